from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock

import pytest

from flurry.client import FlurryClient
from flurry.context import FlurryContext
from tests.flurry_fakes import FakePlatform, FakeRegistrar, Recorder


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def fake_registrar() -> FakeRegistrar:
    return FakeRegistrar()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def client(
    fake_platform: FakePlatform, fake_registrar: FakeRegistrar, sleep: AsyncMock
) -> FlurryClient:
    return FlurryClient(fake_platform, registrar=fake_registrar, sleep=sleep)


@pytest.fixture
def record(client: FlurryClient) -> Callable[[str], Recorder]:
    def _factory(event: str) -> Recorder:
        recorder = Recorder()
        client.on(event, recorder)
        return recorder

    return _factory


@pytest.fixture
def context(client: FlurryClient) -> FlurryContext:
    return client.context


@pytest.fixture
def make_module_runner() -> Callable[[list], Callable[..., Awaitable]]:
    def _factory(seen: list) -> Callable[..., Awaitable]:
        async def runner(module, callback, event):
            seen.append((module.name, event.name))
            return await callback(*event.arguments)

        return runner

    return _factory
