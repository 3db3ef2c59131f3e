"""Page proxy: page-scoped routing, timeouts and event waits."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from browser_channel.connection import ChannelOwner
from browser_channel.errors import TargetClosedError
from browser_channel.frame import Frame, FrameNavigatedEvent
from browser_channel.network import Request, Response, Route, network_event_payload
from browser_channel.route_handler import RouteCallback, UnrouteBehavior
from browser_channel.routing import RouteRegistry
from browser_channel.timeout_settings import TimeoutSettings
from browser_channel.url_matcher import URLMatch, URLMatcher
from browser_channel.waiter import EventContextManager, Waiter

if TYPE_CHECKING:
	from browser_channel.browser_context import BrowserContext

_NETWORK_SUBSCRIPTIONS = {
	'request': 'request',
	'response': 'response',
	'requestfinished': 'requestFinished',
	'requestfailed': 'requestFailed',
	'console': 'console',
	'dialog': 'dialog',
	'filechooser': 'fileChooser',
}


NetworkMatch = str | re.Pattern[str] | Callable[[Any], bool]


class Download(BaseModel):
	"""Payload of a page ``download`` event."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)

	url: str
	suggested_filename: str = Field(default='', alias='suggestedFilename')


class Page(ChannelOwner):
	EVENTS = frozenset(
		{
			'close',
			'crash',
			'popup',
			'download',
			'frameattached',
			'framedetached',
			'framenavigated',
			*_NETWORK_SUBSCRIPTIONS,
		}
	)
	EVENT_SUBSCRIPTIONS = _NETWORK_SUBSCRIPTIONS

	def __init__(
		self,
		context: BrowserContext,
		guid: str | None = None,
		main_frame_guid: str | None = None,
		url: str = 'about:blank',
		opener: Page | None = None,
	):
		super().__init__(context.connection, guid)
		self._context = context
		self._opener = opener
		self._timeout_settings = TimeoutSettings(parent=context._timeout_settings)
		self._routes = RouteRegistry(
			self._channel,
			order=self.connection.config.page_route_order,
			base_url=lambda: self._context.base_url,
		)
		self._main_frame = Frame(self.connection, self, guid=main_frame_guid, url=url)
		self._frames: list[Frame] = [self._main_frame]
		self._is_closed = False
		self._close_was_called = False
		self._closed_or_crashed: asyncio.Future[None] = asyncio.get_running_loop().create_future()
		self._message_handlers.update(
			{
				'route': self._on_route_message,
				'close': self._on_close_message,
				'crash': self._on_crash_message,
				'popup': self._on_popup_message,
				'frameAttached': self._on_frame_attached_message,
				'download': self._on_download_message,
			}
		)

	@property
	def context(self) -> BrowserContext:
		return self._context

	@property
	def main_frame(self) -> Frame:
		return self._main_frame

	@property
	def frames(self) -> list[Frame]:
		return list(self._frames)

	@property
	def url(self) -> str:
		return self._main_frame.url

	@property
	def opener(self) -> Page | None:
		return self._opener

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
		if event != 'crash':
			waiter.reject_on_event(self, 'crash', TargetClosedError('Page crashed'))
		if event != 'close':
			waiter.reject_on_event(self, 'close', TargetClosedError('Page closed'))
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

	def expect_popup(
		self,
		predicate: Callable[[Page], bool] | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Page]:
		return self.expect_event('popup', predicate, timeout)

	def expect_request(
		self,
		url_or_predicate: NetworkMatch | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Request]:
		"""Wait for a request whose URL matches a glob or regex, or that a predicate accepts."""
		return self.expect_event('request', self._network_predicate(url_or_predicate), timeout)

	async def wait_for_request(self, url_or_predicate: NetworkMatch | None = None, timeout: float | None = None) -> Request:
		async with self.expect_request(url_or_predicate, timeout) as request_info:
			pass
		return await request_info.value

	def expect_response(
		self,
		url_or_predicate: NetworkMatch | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Response]:
		return self.expect_event('response', self._network_predicate(url_or_predicate), timeout)

	async def wait_for_response(self, url_or_predicate: NetworkMatch | None = None, timeout: float | None = None) -> Response:
		async with self.expect_response(url_or_predicate, timeout) as response_info:
			pass
		return await response_info.value

	def expect_download(
		self,
		predicate: Callable[[Download], bool] | None = None,
		timeout: float | None = None,
	) -> EventContextManager[Download]:
		return self.expect_event('download', predicate, timeout)

	def _network_predicate(self, url_or_predicate: NetworkMatch | None) -> Callable[[Any], bool] | None:
		# Callables receive the request or response object, not its URL.
		if url_or_predicate is None or callable(url_or_predicate):
			return url_or_predicate
		matcher = URLMatcher(url_or_predicate, base_url=self._context.base_url)
		return lambda item: matcher.matches(item.url)

	def expect_navigation(
		self,
		url: URLMatch | None = None,
		timeout: float | None = None,
	) -> EventContextManager[FrameNavigatedEvent]:
		return self._main_frame.expect_navigation(url=url, timeout=timeout)

	async def wait_for_navigation(self, url: URLMatch | None = None, timeout: float | None = None) -> FrameNavigatedEvent:
		return await self._main_frame.wait_for_navigation(url=url, timeout=timeout)

	async def wait_for_url(self, url: URLMatch, timeout: float | None = None) -> None:
		await self._main_frame.wait_for_url(url, timeout=timeout)

	async def close(self) -> None:
		self._close_was_called = True
		if self._is_closed:
			return
		await self._channel.send('close')
		self._on_close()

	async def _on_route(self, route: Route) -> None:
		route._page = self
		# A closing page stalls its requests instead of resolving them.
		if self._close_was_called or self._context.is_closed():
			return
		if await self._routes.dispatch(route):
			return
		await self._context._on_route(route)

	async def _on_route_message(self, params: dict[str, Any]) -> None:
		route = Route.from_params(self.connection, params)
		try:
			await self._on_route(route)
		finally:
			route._dispose()

	def _on_close(self) -> None:
		if self._is_closed:
			return
		self._is_closed = True
		if not self._closed_or_crashed.done():
			self._closed_or_crashed.set_result(None)
		self._context._on_page_closed(self)
		self.emit('close', self)
		for frame in self._frames:
			frame._dispose()
		self._dispose()

	def _on_close_message(self, params: dict[str, Any]) -> None:
		del params
		self._on_close()

	def _on_crash_message(self, params: dict[str, Any]) -> None:
		del params
		if not self._closed_or_crashed.done():
			self._closed_or_crashed.set_result(None)
		self.emit('crash', self)

	def _on_popup_message(self, params: dict[str, Any]) -> None:
		popup = self._context._create_page(params['page'], opener=self)
		self.emit('popup', popup)

	def _emit_subscribed_event(self, event: str, params: dict[str, Any]) -> None:
		self.emit(event, network_event_payload(event, params))

	def _on_download_message(self, params: dict[str, Any]) -> None:
		self.emit('download', Download.model_validate(params))

	def _on_frame_attached_message(self, params: dict[str, Any]) -> None:
		payload = params['frame']
		parent_guid = payload.get('parentFrame')
		parent = next((frame for frame in self._frames if frame.guid == parent_guid), self._main_frame)
		frame = Frame(
			self.connection,
			self,
			guid=payload['guid'],
			url=payload.get('url', 'about:blank'),
			name=payload.get('name', ''),
			parent_frame=parent,
		)
		self._frames.append(frame)
		self.emit('frameattached', frame)

	def _on_frame_detached(self, frame: Frame) -> None:
		if frame in self._frames:
			self._frames.remove(frame)
		self.emit('framedetached', frame)

	def __repr__(self) -> str:
		return f'<Page url={self.url!r}>'
