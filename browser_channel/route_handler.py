"""A single registered interceptor: matcher, callback and invocation budget."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from browser_channel.errors import RouteHandlerError
from browser_channel.url_matcher import URLMatcher

if TYPE_CHECKING:
	from browser_channel.network import Route

RouteCallback = Callable[['Route'], Awaitable[Any] | Any]
UnrouteBehavior = Literal['wait', 'ignoreErrors', 'default']


@dataclass(slots=True, eq=False)
class RouteHandlerInvocation:
	route: Route
	complete: asyncio.Future[None] = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class RouteHandler:
	def __init__(self, matcher: URLMatcher, handler: RouteCallback, times: int | None = None):
		if times is not None and times <= 0:
			raise ValueError(f'times must be a positive integer, got {times}')
		self.matcher = matcher
		self.handler = handler
		self._times = times
		self.handled_count = 0
		self._active_invocations: set[RouteHandlerInvocation] = set()
		self._ignore_exception = False

	@property
	def times(self) -> int | None:
		return self._times

	@property
	def ignore_errors(self) -> bool:
		return self._ignore_exception

	@property
	def active_invocations(self) -> int:
		return len(self._active_invocations)

	@property
	def will_expire(self) -> bool:
		return self._times is not None and self.handled_count + 1 >= self._times

	def matches(self, url: str) -> bool:
		return self.matcher.matches(url)

	async def handle(self, route: Route) -> bool:
		"""Run the callback; True if it claimed the route, False if it fell back."""
		invocation = RouteHandlerInvocation(route=route)
		self._active_invocations.add(invocation)
		try:
			return await self._handle_internal(route)
		except Exception as exc:
			# Stopped without waiting: errors from invocations still in flight are dropped.
			if self._ignore_exception:
				return False
			raise RouteHandlerError(route.request.url, exc) from exc
		finally:
			invocation.complete.set_result(None)
			self._active_invocations.discard(invocation)

	async def stop(self, behavior: UnrouteBehavior) -> None:
		"""Either wait for in-flight invocations or stop caring about their errors."""
		if behavior == 'ignoreErrors':
			self._ignore_exception = True
			return
		pending = [
			invocation.complete for invocation in self._active_invocations if not invocation.route._did_throw
		]
		if pending:
			await asyncio.gather(*pending)

	async def _handle_internal(self, route: Route) -> bool:
		self.handled_count += 1
		handled = route._start_handling()
		try:
			result = self.handler(route)
			if inspect.isawaitable(result):
				await result
		except Exception:
			route._did_throw = True
			raise
		return await handled

	def __repr__(self) -> str:
		return f'RouteHandler({self.matcher!r}, times={self._times}, handled={self.handled_count})'
