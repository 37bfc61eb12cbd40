"""请求体与历史记录的校验。

入站请求是任意 JSON，这里逐个字段挑选类型正确的值，
绝不把未校验的数据传到队列之后。
"""

from typing import Any, Iterable, List, Optional

from chat_broker.domain.models import ROLES, ConversationTurn, ValidatedPrompt


def validate_request_body(body: Any) -> Optional[ValidatedPrompt]:
    """校验 ``POST /chat/{model}`` 的请求体。

    规则：
    - message 存在时必须是字符串，否则整体拒绝。
    - name / platform / reply 必须是字符串，否则丢弃该字段。
    - noResponse 必须是真正的 bool，1 或 "true" 不做转换。
    - images 必须是非空且全部为字符串的列表，否则丢弃。
    - 既没有可用文本也没有图片时拒绝。

    Returns:
        ValidatedPrompt，拒绝时返回 None。
    """

    if not isinstance(body, dict):
        return None

    message = body.get("message")
    if message is not None and not isinstance(message, str):
        return None

    images = body.get("images")
    if not (
        isinstance(images, list)
        and images
        and all(isinstance(x, str) for x in images)
    ):
        images = None

    if not message and not images:
        return None

    no_response = body.get("noResponse")
    return ValidatedPrompt(
        message=message or None,
        name=_str_or_none(body.get("name")),
        platform=_str_or_none(body.get("platform")),
        no_response=no_response if isinstance(no_response, bool) else False,
        reply=_str_or_none(body.get("reply")),
        images=tuple(images) if images else None,
    )


def contains_banned(message: Optional[str], banned: Iterable[str]) -> bool:
    """大小写不敏感的屏蔽词子串匹配，空词不参与匹配。"""

    if not message:
        return False
    lowered = message.lower()
    return any(s and s.lower() in lowered for s in banned)


def validate_history(data: Any) -> Optional[List[ConversationTurn]]:
    """过滤持久化的历史记录。

    非列表返回 None；role 不认识或 content 不是字符串的记录被丢弃，
    images 类型不对时只丢掉 images 字段。
    """

    if not isinstance(data, list):
        return None
    turns: List[ConversationTurn] = []
    for item in data:
        turn = turn_from_payload(item)
        if turn is not None:
            turns.append(turn)
    return turns


def turn_from_payload(item: Any) -> Optional[ConversationTurn]:
    """把一条 JSON 记录转换为 ConversationTurn，形状不符时返回 None。"""

    if not isinstance(item, dict):
        return None
    role = item.get("role")
    content = item.get("content")
    if role not in ROLES or not isinstance(content, str):
        return None
    images = item.get("images")
    if isinstance(images, list) and images and all(isinstance(x, str) for x in images):
        return ConversationTurn(role=role, content=content, images=tuple(images))
    return ConversationTurn(role=role, content=content)


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
