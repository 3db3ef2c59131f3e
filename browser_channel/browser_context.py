"""Browser context proxy: the broader routing scope and parent of page timeouts."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from browser_channel.connection import ChannelOwner, Connection
from browser_channel.errors import TargetClosedError
from browser_channel.network import Route, network_event_payload
from browser_channel.page import Page
from browser_channel.route_handler import RouteCallback, UnrouteBehavior
from browser_channel.routing import RouteRegistry
from browser_channel.timeout_settings import TimeoutSettings
from browser_channel.url_matcher import URLMatch
from browser_channel.waiter import EventContextManager, Waiter

_NETWORK_SUBSCRIPTIONS = {
	'request': 'request',
	'response': 'response',
	'requestfinished': 'requestFinished',
	'requestfailed': 'requestFailed',
	'console': 'console',
	'dialog': 'dialog',
}


class BrowserContext(ChannelOwner):
	EVENTS = frozenset({'close', 'page', *_NETWORK_SUBSCRIPTIONS})
	EVENT_SUBSCRIPTIONS = _NETWORK_SUBSCRIPTIONS

	def __init__(self, connection: Connection, guid: str | None = None, base_url: str | None = None):
		super().__init__(connection, guid)
		self.base_url = base_url
		self._timeout_settings = TimeoutSettings(config=connection.config)
		self._routes = RouteRegistry(
			self._channel,
			order=connection.config.context_route_order,
			base_url=lambda: self.base_url,
		)
		self._pages: list[Page] = []
		self._is_closed = False
		self._message_handlers.update(
			{
				'route': self._on_route_message,
				'page': self._on_page_message,
				'close': self._on_close_message,
			}
		)

	@property
	def pages(self) -> list[Page]:
		return list(self._pages)

	@property
	def timeout_settings(self) -> TimeoutSettings:
		return self._timeout_settings

	def is_closed(self) -> bool:
		return self._is_closed

	def set_default_timeout(self, timeout: float | None) -> None:
		self._timeout_settings.set_default_timeout(timeout)
		self._channel.send_no_reply('setDefaultTimeoutNoReply', {'timeout': timeout})

	def set_default_navigation_timeout(self, timeout: float | None) -> None:
		self._timeout_settings.set_default_navigation_timeout(timeout)
		self._channel.send_no_reply('setDefaultNavigationTimeoutNoReply', {'timeout': timeout})

	async def route(self, url: URLMatch, handler: RouteCallback, times: int | None = None) -> None:
		await self._routes.add(url, handler, times=times)

	async def unroute(self, url: URLMatch, handler: RouteCallback | None = None) -> None:
		await self._routes.remove(url, handler)

	async def unroute_all(self, behavior: UnrouteBehavior | None = None) -> None:
		await self._routes.remove_all(behavior)

	def expect_event(
		self,
		event: str,
		predicate: Callable[..., bool] | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Any]:
		self._check_event(event)
		resolved = self._timeout_settings.timeout(timeout)
		waiter = Waiter(self, event)
		if self._is_closed and event != 'close':
			waiter.reject_immediately(TargetClosedError('Target page, context or browser has been closed'))
		waiter.reject_on_timeout(resolved or None, f'Timeout {resolved}ms exceeded while waiting for event "{event}"')
		if event != 'close':
			waiter.reject_on_event(self, 'close', TargetClosedError('Context closed'))
		return waiter.expect(self, event, predicate)

	async def wait_for_event(
		self,
		event: str,
		predicate: Callable[..., bool] | None = None,
		timeout: float | None = None,
	) -> Any:
		async with self.expect_event(event, predicate, timeout) as event_info:
			pass
		return await event_info.value

	def expect_page(
		self,
		predicate: Callable[[Page], bool] | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Page]:
		return self.expect_event('page', predicate, timeout)

	async def close(self) -> None:
		if self._is_closed:
			return
		await self._channel.send('close')
		self._on_close()

	async def _on_route(self, route: Route) -> None:
		if self._is_closed:
			return
		if await self._routes.dispatch(route):
			return
		if self.connection.config.unrouted_request_policy == 'abort':
			await route._inner_abort()
		else:
			await route._inner_continue(is_fallback=True)

	async def _on_route_message(self, params: dict[str, Any]) -> None:
		route = Route.from_params(self.connection, params)
		try:
			await self._on_route(route)
		finally:
			route._dispose()

	def _create_page(self, payload: dict[str, Any], opener: Page | None = None) -> Page:
		page = Page(
			self,
			guid=payload['guid'],
			main_frame_guid=payload.get('mainFrame'),
			url=payload.get('url', 'about:blank'),
			opener=opener,
		)
		self._pages.append(page)
		self.emit('page', page)
		return page

	def _emit_subscribed_event(self, event: str, params: dict[str, Any]) -> None:
		self.emit(event, network_event_payload(event, params))

	def _on_page_message(self, params: dict[str, Any]) -> None:
		self._create_page(params['page'])

	def _on_page_closed(self, page: Page) -> None:
		if page in self._pages:
			self._pages.remove(page)

	def _on_close(self) -> None:
		if self._is_closed:
			return
		self._is_closed = True
		for page in list(self._pages):
			page._on_close()
		self.emit('close', self)
		self._dispose()

	def _on_close_message(self, params: dict[str, Any]) -> None:
		del params
		self._on_close()
