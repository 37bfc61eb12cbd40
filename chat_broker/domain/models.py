"""Broker 内部共享的数据结构。

- ConversationTurn: 一条对话消息，既是持久化单元，也是发给后端的单元。
- ValidatedPrompt: 经过校验、只保留合法字段的请求体。
- PendingRequest: 队列中的一项，携带回复调用方用的 Future。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple


# 对话角色，与 Ollama chat 接口的 role 字段对应
Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ConversationTurn:
    """一条对话消息，追加后不可修改。

    - role: 消息角色。
    - content: 纯文本内容。
    - images: 可选的图片引用（base64 字符串），作为独立字段发送，不内联到文本中。
    """

    role: Role
    content: str
    images: Optional[Tuple[str, ...]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.images:
            payload["images"] = list(self.images)
        return payload


@dataclass(frozen=True)
class ValidatedPrompt:
    """校验后的请求体，未知或类型错误的字段已被丢弃。"""

    message: Optional[str] = None
    name: Optional[str] = None
    platform: Optional[str] = None
    no_response: bool = False
    reply: Optional[str] = None
    images: Optional[Tuple[str, ...]] = None


@dataclass
class PendingRequest:
    """等待 Worker 处理的一次聊天请求。"""

    model_id: str
    prompt: ValidatedPrompt
    reply: "asyncio.Future[Dict[str, Any]]" = field(repr=False)

    def respond(self, payload: Dict[str, Any]) -> bool:
        """把结果交给等待中的 HTTP 处理函数。

        调用方断开连接时 Future 已被取消，此时返回 False。
        """

        if self.reply.done():
            return False
        self.reply.set_result(payload)
        return True

    def respond_error(self, message: str) -> bool:
        return self.respond({"error": message})


def turns_to_payload(turns: List[ConversationTurn]) -> List[Dict[str, Any]]:
    return [t.to_payload() for t in turns]
