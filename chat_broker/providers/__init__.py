"""后端集成层。

该包下的模块负责：
- 定义后端与翻译服务的抽象接口 (base)。
- 提供 Ollama 与 LibreTranslate 的具体实现。
"""

from typing import Optional

from chat_broker.config.settings import settings
from chat_broker.infrastructure.logging.logger import logger
from chat_broker.providers.base import BackendClient, Translator
from chat_broker.providers.ollama_client import OllamaClient
from chat_broker.providers.translator import LibreTranslateClient


def create_backend(cfg=None) -> BackendClient:
    """根据配置创建后端客户端。"""

    return OllamaClient(cfg or settings)


def create_translator(cfg=None) -> Optional[Translator]:
    """仅在开启 ENGLISH_ONLY 且配置了 TRANSLATOR_URL 时返回翻译客户端。"""

    cfg = cfg or settings
    if not getattr(cfg, "english_only", False):
        return None
    if not getattr(cfg, "translator_url", None):
        logger.warning("ENGLISH_ONLY is set but TRANSLATOR_URL is empty, messages will not be translated")
        return None
    return LibreTranslateClient(cfg)
