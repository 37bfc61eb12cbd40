"""测试单 Worker 队列的处理顺序与错误隔离。"""

import asyncio
import tempfile
from datetime import datetime
from pathlib import Path

from chat_broker.broker.composer import TurnComposer
from chat_broker.broker.worker import ChatBroker
from chat_broker.domain.exceptions import BackendTransportError, ModelUnavailableError
from chat_broker.domain.models import ValidatedPrompt
from chat_broker.infrastructure.storage.json_store import JsonHistoryStore


class SettingsStub:
    check_model_first = False


class CheckFirstSettings:
    check_model_first = True


class FakeBackend:
    """模拟的 Ollama，记录调用窗口以检查是否有重叠。"""

    name = "fake"

    def __init__(self, valid=("alpaca", "llama"), reply="hi there", delay=0.01):
        self.valid = set(valid)
        self.reply = reply
        self.delay = delay
        self.show_calls = []
        self.chat_calls = []
        self.active = 0
        self.max_active = 0
        self.fail_next = None

    async def ping(self):
        return True

    async def show_model(self, model_id):
        self._enter()
        try:
            self.show_calls.append(model_id)
            await asyncio.sleep(0)
            if model_id not in self.valid:
                raise ModelUnavailableError(code="INVALID_MODEL", message=f"Invalid model {model_id}")
        finally:
            self.active -= 1

    async def chat(self, model_id, turns):
        self._enter()
        try:
            self.chat_calls.append((model_id, [t.content for t in turns]))
            await asyncio.sleep(self.delay)
            if self.fail_next is not None:
                err, self.fail_next = self.fail_next, None
                raise err
            return {"model": model_id, "message": {"role": "assistant", "content": self.reply}, "done": True}
        finally:
            self.active -= 1

    def _enter(self):
        self.active += 1
        self.max_active = max(self.max_active, self.active)


def make_broker(d, backend, max_history=100, cfg=None):
    store = JsonHistoryStore(root=Path(d), max_history=max_history)
    return ChatBroker(store=store, backend=backend, cfg=cfg or SettingsStub())


def prompt(text, **kw):
    return ValidatedPrompt(message=text, **kw)


def test_fifo_order_and_single_flight():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        broker = make_broker(d, backend)

        async def run():
            futures = [
                broker.submit("alpaca" if i % 2 else "llama", prompt(f"msg-{i}"))
                for i in range(6)
            ]
            assert broker.working
            return await asyncio.gather(*futures)

        replies = asyncio.run(run())
        assert all(r["message"]["content"] == "hi there" for r in replies)
        processed = [calls[-1].rsplit("\n", 1)[-1] for _, calls in backend.chat_calls]
        assert processed == [f"msg-{i}" for i in range(6)]
        assert backend.max_active == 1
        assert not broker.working


def test_concurrent_producers_keep_arrival_order():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend(delay=0)
        broker = make_broker(d, backend)
        submitted = []

        async def producer(i):
            await asyncio.sleep(0.001 * i)
            submitted.append(i)
            return await broker.submit("alpaca", prompt(f"p{i}"))

        async def run():
            await asyncio.gather(*(producer(i) for i in range(5)))

        asyncio.run(run())
        processed = [calls[-1].rsplit("\n", 1)[-1] for _, calls in backend.chat_calls]
        assert processed == [f"p{i}" for i in submitted]


def test_success_appends_user_and_assistant():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        broker = make_broker(d, backend)

        async def run():
            return await broker.submit("alpaca", prompt("hello", name="Ana", platform="web"))

        reply = asyncio.run(run())
        assert reply == {"model": "alpaca", "message": {"role": "assistant", "content": "hi there"}, "done": True}
        history = broker.store.get("alpaca")
        assert [t.role for t in history] == ["user", "assistant"]
        assert "Platform: web; Sender: Ana; Message:\nhello" in history[0].content
        assert history[1].content == "hi there"
        # 发给后端的是完整历史（此时只有用户消息）
        assert len(backend.chat_calls[0][1]) == 1


def test_history_never_exceeds_max():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend(delay=0)
        broker = make_broker(d, backend, max_history=3)

        async def run():
            for i in range(5):
                await broker.submit("alpaca", prompt(f"m{i}"))
                assert len(broker.store.get("alpaca")) <= 3

        asyncio.run(run())
        assert all(len(turns) <= 3 for _, turns in backend.chat_calls)


def test_unknown_model_appends_user_turn_but_skips_chat():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        broker = make_broker(d, backend)

        async def run():
            first = await broker.submit("ghost", prompt("hello"))
            second = await broker.submit("ghost", prompt("again"))
            return first, second

        first, second = asyncio.run(run())
        assert first == {"error": "Invalid model ghost"}
        assert second == {"error": "Invalid model ghost"}
        assert backend.chat_calls == []
        assert backend.show_calls == ["ghost"]
        assert [t.role for t in broker.store.get("ghost")] == ["user", "user"]


def test_check_model_first_does_not_append():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        broker = make_broker(d, backend, cfg=CheckFirstSettings())

        async def run():
            return await broker.submit("ghost", prompt("hello"))

        assert asyncio.run(run()) == {"error": "Invalid model ghost"}
        assert broker.store.get("ghost") == []


def test_no_response_only_appends_user_turn():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        broker = make_broker(d, backend)

        async def run():
            return await broker.submit("alpaca", prompt("fyi", no_response=True))

        assert asyncio.run(run()) == {"done": True}
        assert backend.chat_calls == []
        assert [t.role for t in broker.store.get("alpaca")] == ["user"]


def test_backend_failure_does_not_stop_worker():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        backend.fail_next = BackendTransportError(code="BACKEND_STATUS", message="Ollama error 500")
        broker = make_broker(d, backend)

        async def run():
            return await asyncio.gather(
                broker.submit("alpaca", prompt("one")),
                broker.submit("alpaca", prompt("two")),
            )

        first, second = asyncio.run(run())
        assert first == {"error": "Ollama error 500"}
        assert second["message"]["content"] == "hi there"
        assert [t.role for t in broker.store.get("alpaca")] == ["user", "user", "assistant"]


def test_unexpected_exception_is_reported_to_caller():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        backend.fail_next = RuntimeError("boom")
        broker = make_broker(d, backend)

        async def run():
            return await asyncio.gather(
                broker.submit("alpaca", prompt("one")),
                broker.submit("llama", prompt("two")),
            )

        first, second = asyncio.run(run())
        assert first == {"error": "Server error boom"}
        assert second["message"]["content"] == "hi there"
        assert not broker.working


def test_cancelled_caller_does_not_break_queue():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend(delay=0.02)
        broker = make_broker(d, backend)

        async def run():
            gone = broker.submit("alpaca", prompt("one"))
            kept = broker.submit("alpaca", prompt("two"))
            gone.cancel()
            result = await kept
            await broker.wait_idle()
            return result

        assert asyncio.run(run())["message"]["content"] == "hi there"
        assert len(backend.chat_calls) == 2


def test_uses_custom_composer():
    with tempfile.TemporaryDirectory() as d:
        backend = FakeBackend()
        store = JsonHistoryStore(root=Path(d), max_history=10)
        composer = TurnComposer(clock=lambda: datetime(2026, 1, 2, 3, 4, 5))
        broker = ChatBroker(store=store, backend=backend, composer=composer, cfg=SettingsStub())

        async def run():
            return await broker.submit("alpaca", prompt("hi", no_response=True))

        asyncio.run(run())
        assert store.get("alpaca")[0].content.startswith("Current time: 03:04:05 2nd January 2026;")
