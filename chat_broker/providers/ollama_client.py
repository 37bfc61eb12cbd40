"""Ollama 后端适配器。

只使用三个端点：
- GET  {base}            健康检查，正常时返回纯文本 "Ollama is running"
- POST {base}/api/show   查询模型是否存在
- POST {base}/api/chat   非流式对话（stream=false）
"""

from typing import Any, Dict, List

import httpx

from chat_broker.config.settings import settings
from chat_broker.domain.exceptions import BackendTransportError, ModelUnavailableError
from chat_broker.domain.models import ConversationTurn, turns_to_payload


HEALTHY_BANNER = "Ollama is running"


class OllamaClient:
    """Ollama 客户端实现，每次调用使用独立的 AsyncClient。"""

    name = "ollama"

    def __init__(self, cfg=settings):
        self._settings = cfg

    @property
    def base_url(self) -> str:
        return str(getattr(self._settings, "ollama_base_url", None) or "http://127.0.0.1:11434").rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=getattr(self._settings, "http_timeout", None), trust_env=False)

    async def ping(self) -> bool:
        try:
            async with self._client() as client:
                resp = await client.get(self.base_url)
        except httpx.RequestError:
            return False
        return resp.status_code < 400 and resp.text == HEALTHY_BANNER

    async def show_model(self, model_id: str) -> None:
        try:
            async with self._client() as client:
                resp = await client.post(f"{self.base_url}/api/show", json={"name": model_id})
        except httpx.RequestError as e:
            raise BackendTransportError(code="NETWORK_ERROR", message=f"Server error {e}", http_status=502)
        if resp.status_code >= 400:
            raise ModelUnavailableError(
                code="INVALID_MODEL",
                message=f"Invalid model {model_id}",
                http_status=404,
                status=resp.status_code,
            )

    async def chat(self, model_id: str, turns: List[ConversationTurn]) -> Dict[str, Any]:
        payload = {
            "model": model_id,
            "messages": turns_to_payload(turns),
            "stream": False,
        }
        try:
            async with self._client() as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
        except httpx.RequestError as e:
            raise BackendTransportError(code="NETWORK_ERROR", message=f"Server error {e}", http_status=502)
        if resp.status_code >= 400:
            raise BackendTransportError(
                code="BACKEND_STATUS",
                message=f"Ollama error {resp.status_code}",
                http_status=502,
                status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise BackendTransportError(code="BAD_RESPONSE", message=f"Server error {e}", http_status=502)
        if not isinstance(data, dict) or not isinstance(data.get("message"), dict):
            raise BackendTransportError(
                code="BAD_RESPONSE",
                message="Server error unexpected chat response",
                http_status=502,
            )
        return data
