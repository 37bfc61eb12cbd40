"""请求队列、模型可用性缓存、消息拼装与定时任务。"""

from chat_broker.broker.availability import ModelAvailabilityCache
from chat_broker.broker.composer import TurnComposer
from chat_broker.broker.scheduler import PeriodicTask, Scheduler
from chat_broker.broker.worker import ChatBroker

__all__ = ["ChatBroker", "ModelAvailabilityCache", "PeriodicTask", "Scheduler", "TurnComposer"]
