"""定时任务：历史落盘与可用性缓存清空。

两个定时器与 Worker 运行在同一个事件循环上，回调本身是同步函数，
执行过程中不会与 Worker 的处理步骤交错。
"""

import asyncio
from typing import Callable, List, Optional

from chat_broker.infrastructure.logging.logger import logger


class PeriodicTask:
    """每隔 interval 秒调用一次 callback，回调异常只记录日志。"""

    def __init__(self, name: str, interval: float, callback: Callable[[], object]):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def run_once(self) -> None:
        try:
            self._callback()
        except Exception as e:  # noqa: BLE001 - 定时器不能因单次失败而停止
            logger.exception(f"Periodic task {self.name} failed: {e}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.run_once()


class Scheduler:
    """统一启动/停止一组 PeriodicTask。"""

    def __init__(self, tasks: Optional[List[PeriodicTask]] = None):
        self.tasks: List[PeriodicTask] = list(tasks or [])

    def add(self, name: str, interval: float, callback: Callable[[], object]) -> PeriodicTask:
        task = PeriodicTask(name, interval, callback)
        self.tasks.append(task)
        return task

    def start(self) -> None:
        for task in self.tasks:
            task.start()

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
