"""Shared fixtures for ambient-id tests."""

from __future__ import annotations

from typing import Awaitable, Callable

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from ambient_id import DetectionConfig, DetectionState, RetryConfig, StaticAmbientSource
from tests.mocks import FakeCommandRunner


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
async def make_state():
    """Factory for DetectionState over fixed env/files; closes HTTP sessions."""
    states: list[DetectionState] = []

    def _make(
        env: dict[str, str] | None = None,
        files: dict[str, str] | None = None,
        *,
        runner: FakeCommandRunner | None = None,
        config: DetectionConfig | None = None,
    ) -> DetectionState:
        state = DetectionState(
            source=StaticAmbientSource(env, files),
            config=config or DetectionConfig(retry=RetryConfig.no_retry()),
        )
        if runner is not None:
            state.runner = runner  # type: ignore[assignment]
        states.append(state)
        return state

    yield _make

    for state in states:
        await state.close()


@pytest.fixture
async def serve() -> Callable[[web.Application], Awaitable[TestServer]]:
    """Start aiohttp applications on local test servers."""
    servers: list[TestServer] = []

    async def _serve(app: web.Application) -> TestServer:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield _serve

    for server in servers:
        await server.close()
