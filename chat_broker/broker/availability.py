"""模型可用性缓存。

避免每个请求都去后端查询 /api/show。条目由定时器整体清空，
这样后端新安装的模型不需要重启进程即可使用。
"""

from typing import Dict, Optional

from chat_broker.domain.exceptions import BusinessError, ModelUnavailableError
from chat_broker.infrastructure.logging.logger import logger
from chat_broker.providers.base import BackendClient


class ModelAvailabilityCache:
    def __init__(self) -> None:
        self._entries: Dict[str, bool] = {}

    def lookup(self, model_id: str) -> Optional[bool]:
        """True/False 为已知结论，None 表示未知，需要重新查询后端。"""
        return self._entries.get(model_id)

    def mark(self, model_id: str, valid: bool) -> None:
        self._entries[model_id] = valid

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    async def ensure(self, model_id: str, backend: BackendClient) -> None:
        """确认模型可用，不可用时抛出 BusinessError。

        缓存为 False 时直接短路，直到下一次 clear 才会重新查询。
        查询失败（包括网络错误）同样缓存为 False，并把具体错误抛给本次请求。
        """

        known = self.lookup(model_id)
        if known is True:
            return
        if known is False:
            raise ModelUnavailableError(
                code="INVALID_MODEL",
                message=f"Invalid model {model_id}",
                http_status=404,
                cached=True,
            )
        try:
            await backend.show_model(model_id)
        except BusinessError as e:
            self.mark(model_id, False)
            logger.warning(f"Model {model_id} unavailable: {e.message}", extra={"extra": {
                "model": model_id,
                "code": e.code,
            }})
            raise
        self.mark(model_id, True)
