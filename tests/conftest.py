import json
import os
from typing import Any, Callable

import httpx
import pytest
from payloads import RPC_HOST, round_state, tendermint_validators

from tmtop.core.config import Settings, get_settings
from tmtop.core.rpc_types import ConsensusRoundState, TendermintValidator


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep the developer's environment and .env out of every test."""
    for key in [k for k in os.environ if k.startswith("TMTOP_")]:
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(rpc_host=RPC_HOST, request_timeout=5.0)


@pytest.fixture
def mock_transport():
    """Build an httpx.MockTransport serving `routes`, keyed by path and query.

    A route value is a JSON body, a `(status, body)` tuple, or a callable
    receiving the request. Served paths are appended to `transport.calls`.
    """

    def build(routes: dict[str, Any]) -> httpx.MockTransport:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            key = request.url.raw_path.decode()
            calls.append(key)
            if key not in routes:
                return httpx.Response(404, content=b"not found")

            route = routes[key]
            if callable(route):
                return route(request)
            if isinstance(route, tuple):
                status, body = route
                content = body.encode() if isinstance(body, str) else json.dumps(body).encode()
                return httpx.Response(status, content=content)
            return httpx.Response(200, content=json.dumps(route).encode())

        transport = httpx.MockTransport(handler)
        transport.calls = calls
        return transport

    return build


@pytest.fixture
def make_round_state() -> Callable[..., ConsensusRoundState]:
    def build(**kwargs: Any) -> ConsensusRoundState:
        return ConsensusRoundState.model_validate(round_state(**kwargs))

    return build


@pytest.fixture
def make_validators() -> Callable[[list[int]], list[TendermintValidator]]:
    def build(powers: list[int]) -> list[TendermintValidator]:
        return [TendermintValidator.model_validate(v) for v in tendermint_validators(powers)]

    return build
