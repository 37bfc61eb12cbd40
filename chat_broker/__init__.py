"""Chat Broker 顶层包。

该包在本地 Ollama 推理服务前提供单 Worker 的请求队列，
包括配置加载、请求校验、按模型维护的滚动对话历史、
模型可用性缓存以及历史的定时持久化。
"""

from chat_broker.api import BrokerService, create_app

__all__ = ["BrokerService", "create_app"]
