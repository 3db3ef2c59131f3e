"""Frame proxy and the navigation waits built on ``Waiter``."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from browser_channel.connection import ChannelOwner, Connection
from browser_channel.errors import BrowserChannelError, TargetClosedError
from browser_channel.url_matcher import URLMatch, URLMatcher
from browser_channel.waiter import EventContextManager, Waiter

if TYPE_CHECKING:
	from browser_channel.page import Page


class FrameNavigatedEvent(BaseModel):
	"""Payload of a frame ``navigated`` event."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)

	url: str
	name: str = ''
	new_document: bool = Field(default=True, alias='newDocument')
	error: str | None = None


class Frame(ChannelOwner):
	EVENTS = frozenset({'navigated'})

	def __init__(
		self,
		connection: Connection,
		page: Page,
		guid: str | None = None,
		url: str = 'about:blank',
		name: str = '',
		parent_frame: Frame | None = None,
	):
		super().__init__(connection, guid)
		self._page = page
		self._url = url
		self._name = name
		self._parent_frame = parent_frame
		self._detached = False
		self._message_handlers.update(
			{
				'navigated': self._on_navigated_message,
				'detached': self._on_detached_message,
			}
		)

	@property
	def page(self) -> Page:
		return self._page

	@property
	def url(self) -> str:
		return self._url

	@property
	def name(self) -> str:
		return self._name

	@property
	def parent_frame(self) -> Frame | None:
		return self._parent_frame

	def is_detached(self) -> bool:
		return self._detached

	async def wait_for_navigation(self, url: URLMatch | None = None, timeout: float | None = None) -> FrameNavigatedEvent:
		"""Wait for this frame to commit a navigation, optionally to a matching URL."""
		async with self.expect_navigation(url=url, timeout=timeout) as navigation:
			pass
		return await navigation.value

	def expect_navigation(
		self,
		url: URLMatch | None = None,
		timeout: float | None = None,
	) -> EventContextManager[FrameNavigatedEvent]:
		waiter = self._setup_navigation_waiter('frame.expect_navigation', timeout)
		matcher = URLMatcher(url, base_url=self._page.context.base_url) if url is not None else None
		if isinstance(url, str):
			waiter.log(f'waiting for navigation to "{url}"')
		else:
			waiter.log('waiting for navigation')

		def _predicate(event: FrameNavigatedEvent) -> bool:
			if event.error:
				return True
			waiter.log(f'  navigated to "{event.url}"')
			return matcher is None or matcher.matches(event.url)

		fired, detach = waiter.event_future(self, 'navigated', _predicate)

		async def _navigated() -> FrameNavigatedEvent:
			with waiter:
				event = await waiter.wait_for_future(fired, detach)
			if event.error:
				raise BrowserChannelError(event.error)
			return event

		return waiter.background(_navigated())

	async def wait_for_url(self, url: URLMatch, timeout: float | None = None) -> None:
		matcher = URLMatcher(url, base_url=self._page.context.base_url)
		if matcher.matches(self._url):
			return
		await self.wait_for_navigation(url=url, timeout=timeout)

	def _setup_navigation_waiter(self, wait_name: str, timeout: float | None) -> Waiter:
		waiter = Waiter(self._page, wait_name)
		if self._page.is_closed():
			waiter.reject_immediately(TargetClosedError('Navigation failed because page was closed!'))
		waiter.reject_on_event(self._page, 'close', TargetClosedError('Navigation failed because page was closed!'))
		waiter.reject_on_event(self._page, 'crash', TargetClosedError('Navigation failed because page crashed!'))
		waiter.reject_on_event(
			self._page,
			'framedetached',
			TargetClosedError('Navigating frame was detached!'),
			lambda frame: frame is self,
		)
		resolved = self._page._timeout_settings.navigation_timeout(timeout)
		waiter.reject_on_timeout(resolved or None, f'Timeout {resolved}ms exceeded.')
		return waiter

	def _on_navigated_message(self, params: dict[str, Any]) -> None:
		event = FrameNavigatedEvent.model_validate(params)
		if not event.error:
			self._url = event.url
			self._name = event.name or self._name
		self.emit('navigated', event)
		if not event.error:
			self._page.emit('framenavigated', self)

	def _on_detached_message(self, params: dict[str, Any]) -> None:
		del params
		self._detached = True
		self._page._on_frame_detached(self)
		self._dispose()

	def __repr__(self) -> str:
		return f'<Frame name={self._name!r} url={self._url!r}>'

