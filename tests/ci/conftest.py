"""Shared fakes for the driver transport."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from browser_channel import BrowserContext, ChannelConfig, Connection, Page


class FakeTransport:
	"""Records every command and answers from a canned reply table."""

	def __init__(self) -> None:
		self.calls: list[tuple[str, str, dict[str, Any]]] = []
		self.replies: dict[str, Any] = {}
		self.failing_methods: set[str] = set()

	async def send(self, guid: str, method: str, params: dict[str, Any]) -> Any:
		self.calls.append((guid, method, params))
		if method in self.failing_methods:
			raise RuntimeError(f'{method} failed')
		return self.replies.get(method)

	def params_for(self, method: str, guid: str | None = None) -> list[dict[str, Any]]:
		return [params for call_guid, name, params in self.calls if name == method and (guid is None or call_guid == guid)]


def _route_message(guid: str, route_guid: str, url: str, method: str = 'GET') -> dict[str, Any]:
	return {
		'guid': guid,
		'method': 'route',
		'params': {'route': {'guid': route_guid, 'request': {'url': url, 'method': method, 'headers': {}}}},
	}


@pytest.fixture
def route_message():
	"""Builds the inbound ``route`` event the driver sends for an intercepted request."""
	return _route_message


@pytest.fixture
def transport() -> FakeTransport:
	return FakeTransport()


@pytest.fixture
def connection(transport: FakeTransport) -> Connection:
	return Connection(transport, ChannelConfig())


@pytest.fixture
def context(connection: Connection) -> BrowserContext:
	return BrowserContext(connection, guid='context-1')


@pytest_asyncio.fixture
async def page(context: BrowserContext) -> Page:
	return context._create_page({'guid': 'page-1', 'mainFrame': 'frame-1', 'url': 'https://example.com/'})
