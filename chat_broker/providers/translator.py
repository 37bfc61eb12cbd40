"""LibreTranslate 兼容的翻译服务适配器。

- POST {url}/detect     {"q": text}                      -> [{"language": "de", "confidence": 90}]
- POST {url}/translate  {"q", "source", "target", "format"} -> {"translatedText": "..."}
"""

from typing import Any, Optional

import httpx

from chat_broker.config.settings import settings
from chat_broker.domain.exceptions import TranslationError


class LibreTranslateClient:
    name = "libretranslate"

    def __init__(self, cfg=settings, base_url: Optional[str] = None):
        self._settings = cfg
        url = base_url or getattr(cfg, "translator_url", None)
        if not url:
            raise TranslationError(code="MISSING_TRANSLATOR_URL", message="TRANSLATOR_URL not set")
        self._base_url = url.rstrip("/")

    async def detect(self, text: str) -> str:
        data = await self._post("/detect", {"q": text})
        if isinstance(data, list) and data and isinstance(data[0], dict):
            language = data[0].get("language")
            if isinstance(language, str) and language:
                return language
        raise TranslationError(code="BAD_RESPONSE", message="Unexpected detect response")

    async def translate(self, text: str, source: str, target: str = "en") -> str:
        data = await self._post(
            "/translate",
            {"q": text, "source": source, "target": target, "format": "text"},
        )
        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not isinstance(translated, str):
            raise TranslationError(code="BAD_RESPONSE", message="Unexpected translate response")
        return translated

    async def _post(self, path: str, payload: dict) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=getattr(self._settings, "http_timeout", None), trust_env=False
            ) as client:
                resp = await client.post(f"{self._base_url}{path}", json=payload)
        except httpx.RequestError as e:
            raise TranslationError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise TranslationError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise TranslationError(code="BAD_RESPONSE", message=str(e))
