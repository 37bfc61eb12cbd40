"""后端与翻译服务的抽象接口。

Worker 不直接依赖 httpx，而是依赖这里的协议：
- BackendClient: 推理后端（Ollama）的健康检查、模型查询与对话。
- Translator: 语言检测与翻译。

测试时可以用任意实现了同名方法的假对象替换。
"""

from typing import Any, Dict, List, Protocol

from chat_broker.domain.models import ConversationTurn


class BackendClient(Protocol):
    """推理后端客户端协议。

    - ping(): 后端返回预期的标识文本时为 True。
    - show_model(model_id): 模型存在时正常返回，否则抛出
      ModelUnavailableError / BackendTransportError。
    - chat(model_id, turns): 返回后端的原始 JSON 响应，失败时抛出 BackendTransportError。
    """

    name: str

    async def ping(self) -> bool:
        ...

    async def show_model(self, model_id: str) -> None:
        ...

    async def chat(self, model_id: str, turns: List[ConversationTurn]) -> Dict[str, Any]:
        ...


class Translator(Protocol):
    """语言检测与翻译协议。"""

    async def detect(self, text: str) -> str:
        """返回检测到的语言代码，例如 "en"、"de"。"""

        ...

    async def translate(self, text: str, source: str, target: str = "en") -> str:
        ...
