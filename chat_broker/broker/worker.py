"""单 Worker 请求队列。

HTTP 处理函数通过 submit() 入队并等待返回的 Future；同一时刻只有一个
drain 任务在消费队列，因此历史记录与可用性缓存都只在这一个执行上下文里被修改，
不需要额外加锁。

处理一条请求的顺序：
1. 加载（或复用）模型历史；
2. 裁剪到 max_history；
3. 拼装并追加用户消息；
4. 校验模型可用性，失败则回复错误并跳过后续步骤（用户消息仍保留）；
5. noResponse 时直接回复 {"done": true}；
6. 否则把完整历史发给后端，成功后追加助手消息并原样返回后端响应。
"""

import asyncio
from collections import deque
from typing import Any, Deque, Dict, Optional

from chat_broker.broker.availability import ModelAvailabilityCache
from chat_broker.broker.composer import TurnComposer
from chat_broker.config.settings import settings
from chat_broker.domain.exceptions import BusinessError
from chat_broker.domain.models import PendingRequest, ValidatedPrompt
from chat_broker.infrastructure.logging.logger import logger
from chat_broker.infrastructure.storage.json_store import JsonHistoryStore
from chat_broker.providers.base import BackendClient


class ChatBroker:
    def __init__(
        self,
        store: JsonHistoryStore,
        backend: BackendClient,
        availability: Optional[ModelAvailabilityCache] = None,
        composer: Optional[TurnComposer] = None,
        cfg=settings,
    ):
        self._store = store
        self._backend = backend
        self._availability = availability or ModelAvailabilityCache()
        self._composer = composer or TurnComposer()
        self._settings = cfg
        self._queue: Deque[PendingRequest] = deque()
        self._working = False
        self._task: Optional[asyncio.Task] = None

    @property
    def store(self) -> JsonHistoryStore:
        return self._store

    @property
    def availability(self) -> ModelAvailabilityCache:
        return self._availability

    @property
    def working(self) -> bool:
        return self._working

    def submit(self, model_id: str, prompt: ValidatedPrompt) -> "asyncio.Future[Dict[str, Any]]":
        """入队并返回回复 Future；Worker 空闲时立即开始处理。

        必须在事件循环内调用。
        """

        loop = asyncio.get_running_loop()
        item = PendingRequest(model_id=model_id, prompt=prompt, reply=loop.create_future())
        self._queue.append(item)
        if not self._working:
            self._working = True
            self._task = loop.create_task(self._drain())
        return item.reply

    async def wait_idle(self) -> None:
        """等待当前 drain 任务结束（测试与关闭时使用）。"""

        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def _drain(self) -> None:
        try:
            while self._queue:
                item = self._queue.popleft()
                logger.info("Dequeuing...", extra={"extra": {
                    "model": item.model_id,
                    "pending": len(self._queue),
                }})
                try:
                    await self._process(item)
                except Exception as e:  # noqa: BLE001 - 单条请求失败不能终止 Worker
                    logger.exception(f"Unexpected error while processing prompt: {e}", extra={"extra": {
                        "model": item.model_id,
                    }})
                    item.respond_error(f"Server error {e}")
        finally:
            self._working = False

    async def _process(self, item: PendingRequest) -> None:
        model_id, prompt = item.model_id, item.prompt

        self._store.get(model_id)
        self._store.trim(model_id)

        if getattr(self._settings, "check_model_first", False):
            if not await self._check_model(item):
                return
            self._store.append(model_id, await self._composer.compose(prompt))
        else:
            self._store.append(model_id, await self._composer.compose(prompt))
            if not await self._check_model(item):
                return

        if prompt.no_response:
            item.respond({"done": True})
            return

        try:
            response = await self._backend.chat(model_id, self._store.get(model_id))
        except BusinessError as e:
            logger.error(f"Chat request failed: {e.message}", extra={"extra": {
                "model": model_id,
                "code": e.code,
            }})
            item.respond_error(e.message)
            return

        turn = self._composer.assistant_turn(response)
        if turn is not None:
            self._store.append(model_id, turn)
        item.respond(response)
        logger.info("Prompt processed successfully.", extra={"extra": {"model": model_id}})

    async def _check_model(self, item: PendingRequest) -> bool:
        try:
            await self._availability.ensure(item.model_id, self._backend)
        except BusinessError as e:
            item.respond_error(e.message)
            return False
        return True
