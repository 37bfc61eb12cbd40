"""对外服务模块。

把历史存储、可用性缓存、后端客户端、Worker 与定时任务组装在一起，
供 HTTP 层调用。
"""

from typing import Any, Dict, Optional

from chat_broker.broker import ChatBroker, ModelAvailabilityCache, Scheduler, TurnComposer
from chat_broker.config.settings import parse_banned_strings, settings
from chat_broker.domain.exceptions import ContentPolicyError, ValidationError
from chat_broker.domain.models import ValidatedPrompt
from chat_broker.domain.validation import contains_banned, validate_request_body
from chat_broker.infrastructure.logging.logger import logger
from chat_broker.infrastructure.storage.json_store import JsonHistoryStore
from chat_broker.providers import create_backend, create_translator
from chat_broker.providers.base import BackendClient, Translator


_service: Optional["BrokerService"] = None


class BrokerService:
    """一个进程内的 Broker 实例。

    Args:
        cfg: 配置对象，默认使用全局 settings。
        backend: 后端客户端，默认按配置创建 OllamaClient。
        translator: 翻译客户端，默认仅在 ENGLISH_ONLY 时创建。
        store: 历史存储，默认在 HISTORY_DIR 下创建。
    """

    def __init__(
        self,
        cfg=settings,
        backend: Optional[BackendClient] = None,
        translator: Optional[Translator] = None,
        store: Optional[JsonHistoryStore] = None,
    ):
        self._settings = cfg
        self.backend = backend or create_backend(cfg)
        self.store = store or JsonHistoryStore(root=cfg.history_dir, max_history=cfg.max_history)
        self.availability = ModelAvailabilityCache()
        self.broker = ChatBroker(
            store=self.store,
            backend=self.backend,
            availability=self.availability,
            composer=TurnComposer(translator=translator if translator is not None else create_translator(cfg)),
            cfg=cfg,
        )
        self.banned = parse_banned_strings(getattr(cfg, "banned_strings", ""))
        self.scheduler = Scheduler()
        self.scheduler.add("history-flush", cfg.save_interval / 1000, self.flush)
        self.scheduler.add("model-cache-clear", cfg.cache_refresh / 1000, self.clear_model_cache)

    def accept(self, body: Any) -> ValidatedPrompt:
        """校验请求体并做屏蔽词过滤，失败时抛出异常，不进入队列。"""

        prompt = validate_request_body(body)
        if prompt is None:
            raise ValidationError(code="INVALID_REQUEST", message="Invalid request")
        if contains_banned(prompt.message, self.banned):
            logger.info("Rejected prompt containing banned strings")
            raise ContentPolicyError(code="BANNED_CONTENT", message="Message contains banned strings")
        return prompt

    async def chat(self, model_id: str, body: Any) -> Dict[str, Any]:
        prompt = self.accept(body)
        return await self.broker.submit(model_id, prompt)

    async def check(self) -> bool:
        return await self.backend.ping()

    def flush(self) -> int:
        written = self.store.flush_all()
        logger.info(f"Saved history for {written} models")
        return written

    def clear_model_cache(self) -> int:
        cleared = self.availability.clear()
        logger.info(f"Cleared {cleared} cached model entries")
        return cleared

    def start(self) -> None:
        self.store.root.mkdir(parents=True, exist_ok=True)
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.broker.wait_idle()
        self.flush()


def get_default_service() -> BrokerService:
    """获取默认的 BrokerService 实例（单例）。"""
    global _service
    if _service is None:
        _service = BrokerService(settings)
    return _service
