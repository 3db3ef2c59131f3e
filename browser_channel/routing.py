"""Ordered set of route handlers for one interception scope (a page or a context)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from browser_channel.config import RouteOrder
from browser_channel.connection import Channel
from browser_channel.route_handler import RouteCallback, RouteHandler, UnrouteBehavior
from browser_channel.url_matcher import URLMatch, URLMatcher, prepare_interception_patterns

if TYPE_CHECKING:
	from browser_channel.network import Route

logger = logging.getLogger(__name__)


class RouteRegistry:
	"""Live handler list plus the dispatch walk over it.

	Dispatch iterates over a copy, so registrations made while a request is being
	handled only affect later requests. Interception is switched off at the driver
	whenever the list becomes empty and back on when a handler is added.
	"""

	def __init__(self, channel: Channel, order: RouteOrder = 'newest_first', base_url: Callable[[], str | None] | None = None):
		self._channel = channel
		self._order = order
		self._base_url = base_url or (lambda: None)
		self._handlers: list[RouteHandler] = []

	@property
	def handlers(self) -> list[RouteHandler]:
		return list(self._handlers)

	@property
	def order(self) -> RouteOrder:
		return self._order

	def __len__(self) -> int:
		return len(self._handlers)

	def __contains__(self, handler: object) -> bool:
		return handler in self._handlers

	def matcher_for(self, url: URLMatch) -> URLMatcher:
		return URLMatcher(url, base_url=self._base_url())

	async def add(self, url: URLMatch, handler: RouteCallback, times: int | None = None) -> RouteHandler:
		route_handler = RouteHandler(self.matcher_for(url), handler, times=times)
		if self._order == 'newest_first':
			self._handlers.insert(0, route_handler)
		else:
			self._handlers.append(route_handler)
		await self._update_interception_patterns()
		return route_handler

	async def remove(
		self,
		url: URLMatch,
		handler: RouteCallback | None = None,
		behavior: UnrouteBehavior | None = None,
	) -> list[RouteHandler]:
		"""Remove handlers registered with ``url`` and, when given, with ``handler``."""
		matcher = self.matcher_for(url)
		removed: list[RouteHandler] = []
		remaining: list[RouteHandler] = []
		for route_handler in self._handlers:
			if route_handler.matcher == matcher and (handler is None or route_handler.handler == handler):
				removed.append(route_handler)
			else:
				remaining.append(route_handler)
		self._handlers = remaining
		await self._unroute_internal(removed, behavior)
		return removed

	async def remove_all(self, behavior: UnrouteBehavior | None = None) -> list[RouteHandler]:
		removed = self._handlers
		self._handlers = []
		await self._unroute_internal(removed, behavior)
		return removed

	async def dispatch(self, route: Route) -> bool:
		"""Offer ``route`` to matching handlers in order; True once one claims it."""
		for route_handler in list(self._handlers):
			if not route_handler.matches(route.request.url):
				continue
			if route_handler not in self._handlers:
				continue
			if route_handler.will_expire:
				self._handlers.remove(route_handler)
			try:
				handled = await route_handler.handle(route)
			finally:
				if not self._handlers:
					self._disable_interception()
			if handled:
				return True
		return False

	async def _unroute_internal(self, removed: list[RouteHandler], behavior: UnrouteBehavior | None) -> None:
		await self._update_interception_patterns()
		if behavior is None or behavior == 'default' or not removed:
			return
		await asyncio.gather(*(route_handler.stop(behavior) for route_handler in removed))

	async def _update_interception_patterns(self) -> None:
		await self._channel.send('setNetworkInterceptionPatterns', prepare_interception_patterns(self._handlers))

	def _disable_interception(self) -> None:
		logger.debug('No route handlers left, disabling interception')
		self._channel.send_no_reply('setNetworkInterceptionPatterns', {'patterns': []})
