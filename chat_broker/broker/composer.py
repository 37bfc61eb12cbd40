"""用户消息拼装。

Ollama chat 接口只接受 role + content (+ images)，因此把时间、平台、
发送者等元数据拼进同一段文本，由模型自行理解。
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from chat_broker.domain.exceptions import TranslationError
from chat_broker.domain.models import ConversationTurn, ValidatedPrompt
from chat_broker.domain.validation import turn_from_payload
from chat_broker.infrastructure.logging.logger import logger
from chat_broker.providers.base import Translator


def ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_timestamp(now: datetime) -> str:
    """格式如 ``14:03:09 19th October 2026``。"""

    return f"{now:%H:%M:%S} {ordinal(now.day)} {now:%B %Y}"


class TurnComposer:
    """把 ValidatedPrompt 拼装为 ConversationTurn。

    Args:
        translator: 可选翻译客户端；为空时不做语言检测。
        clock: 返回当前时间的函数，测试时可固定。
    """

    def __init__(
        self,
        translator: Optional[Translator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._translator = translator
        self._clock = clock or datetime.now

    async def compose(self, prompt: ValidatedPrompt) -> ConversationTurn:
        text = prompt.message or ""
        source_lang: Optional[str] = None
        if self._translator is not None and text.strip():
            translated = await self._translate(text)
            if translated is not None:
                source_lang, text = translated

        parts = [
            f"Current time: {format_timestamp(self._clock())}",
            f"Platform: {prompt.platform or 'Unknown'}",
            f"Sender: {prompt.name or 'Unknown'}",
        ]
        if source_lang:
            parts.append(f"Translated from: {source_lang}")
        if prompt.reply:
            parts.append(f"Replying to: {prompt.reply}")
        content = "; ".join(parts) + f"; Message:\n{text}"
        return ConversationTurn(role="user", content=content, images=prompt.images)

    @staticmethod
    def assistant_turn(response: Dict[str, Any]) -> Optional[ConversationTurn]:
        """从后端响应中取出助手消息，形状不符时返回 None。"""

        return turn_from_payload(response.get("message"))

    async def _translate(self, text: str) -> Optional[tuple[str, str]]:
        try:
            lang = await self._translator.detect(text)
            if lang.lower().startswith("en"):
                return None
            return lang, await self._translator.translate(text, source=lang, target="en")
        except TranslationError as e:
            logger.warning(f"Translation failed, using original text: {e.message}", extra={"extra": {
                "code": e.code,
            }})
            return None
