"""HTTP 接口层。"""

from chat_broker.api.app import create_app
from chat_broker.api.service import BrokerService, get_default_service

__all__ = ["BrokerService", "create_app", "get_default_service"]
