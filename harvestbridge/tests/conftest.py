"""Shared pytest fixtures for harvestbridge tests."""
import json
from typing import Any, Dict, List, Tuple

import pytest

from harvestbridge.config.models import BridgeConfig


class FakeTransport:
    """Records every GET and answers with a canned status and body."""

    def __init__(self, status: int = 200, body: Any = None) -> None:
        self.status = status
        self.body = body if isinstance(body, str) else json.dumps(body if body is not None else {})
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.closed = False

    async def get(self, url: str, headers: Dict[str, str]) -> Tuple[int, str]:
        self.calls.append((url, dict(headers)))
        return self.status, self.body

    async def close(self) -> None:
        self.closed = True

    @property
    def last_url(self) -> str:
        return self.calls[-1][0]


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return BridgeConfig(bridge_id="test", access_token="tok_123", account_id="987")


@pytest.fixture
def make_transport():
    return FakeTransport
