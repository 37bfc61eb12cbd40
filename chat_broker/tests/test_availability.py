import asyncio

import pytest

from chat_broker.broker.availability import ModelAvailabilityCache
from chat_broker.domain.exceptions import BackendTransportError, ModelUnavailableError


class FakeBackend:
    name = "fake"

    def __init__(self, valid=(), unreachable=False):
        self.valid = set(valid)
        self.unreachable = unreachable
        self.show_calls = []

    async def show_model(self, model_id):
        self.show_calls.append(model_id)
        if self.unreachable:
            raise BackendTransportError(code="NETWORK_ERROR", message="Server error connection refused")
        if model_id not in self.valid:
            raise ModelUnavailableError(code="INVALID_MODEL", message=f"Invalid model {model_id}")


def test_lookup_states():
    cache = ModelAvailabilityCache()
    assert cache.lookup("m") is None
    cache.mark("m", True)
    cache.mark("n", False)
    assert cache.lookup("m") is True
    assert cache.lookup("n") is False
    assert cache.clear() == 2
    assert cache.lookup("m") is None
    assert len(cache) == 0


def test_ensure_caches_valid():
    cache = ModelAvailabilityCache()
    backend = FakeBackend(valid={"alpaca"})
    asyncio.run(cache.ensure("alpaca", backend))
    asyncio.run(cache.ensure("alpaca", backend))
    assert backend.show_calls == ["alpaca"]
    assert cache.lookup("alpaca") is True


def test_ensure_invalid_short_circuits_until_clear():
    cache = ModelAvailabilityCache()
    backend = FakeBackend(valid=set())

    with pytest.raises(ModelUnavailableError):
        asyncio.run(cache.ensure("ghost", backend))
    with pytest.raises(ModelUnavailableError) as exc:
        asyncio.run(cache.ensure("ghost", backend))
    assert exc.value.message == "Invalid model ghost"
    assert backend.show_calls == ["ghost"]

    # 模型后来被安装，清空缓存后即可使用
    backend.valid.add("ghost")
    cache.clear()
    asyncio.run(cache.ensure("ghost", backend))
    assert backend.show_calls == ["ghost", "ghost"]


def test_ensure_transport_error_surfaces_and_caches_invalid():
    cache = ModelAvailabilityCache()
    backend = FakeBackend(unreachable=True)
    with pytest.raises(BackendTransportError) as exc:
        asyncio.run(cache.ensure("alpaca", backend))
    assert "connection refused" in exc.value.message
    assert cache.lookup("alpaca") is False
