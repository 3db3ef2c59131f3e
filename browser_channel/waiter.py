"""Race a wanted event against timeouts and failure events, then clean up.

Every "wait for X" operation (navigation, popup, arbitrary events) builds one
``Waiter``: it registers the conditions that should fail the wait, races them
against the future it actually cares about, and detaches every listener and
timer once the race is decided.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from uuid_extensions import uuid7str

from browser_channel.connection import ChannelOwner
from browser_channel.errors import BrowserChannelError, TargetClosedError, WaitTimeoutError

T = TypeVar('T')

_LOGS_HEADER = ' logs '
_LOGS_WIDTH = 60


def format_log_recording(logs: list[str]) -> str:
	if not logs:
		return ''
	left = (_LOGS_WIDTH - len(_LOGS_HEADER)) // 2
	right = _LOGS_WIDTH - len(_LOGS_HEADER) - left
	body = '\n'.join(logs)
	return f'\n{"=" * left}{_LOGS_HEADER}{"=" * right}\n{body}\n{"=" * _LOGS_WIDTH}'


class Waiter:
	"""Single-use orchestrator for one logical wait."""

	def __init__(self, channel_owner: ChannelOwner, event: str):
		self._channel_owner = channel_owner
		self._wait_id = uuid7str()
		self._loop = asyncio.get_running_loop()
		self._logs: list[str] = []
		self._failures: list[asyncio.Future[Any]] = []
		self._teardown: list[Callable[[], None]] = []
		self._immediate_error: BaseException | None = None
		self._error: str | None = None
		self._disposed = False
		self._send_info({'event': event, 'phase': 'before'})

	@property
	def wait_id(self) -> str:
		return self._wait_id

	@property
	def logs(self) -> list[str]:
		return list(self._logs)

	@property
	def disposed(self) -> bool:
		return self._disposed

	def __enter__(self) -> Waiter:
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		self.dispose()

	def log(self, message: str) -> None:
		self._logs.append(message)
		self._send_info({'phase': 'log', 'message': message})

	def reject_immediately(self, error: BaseException) -> None:
		self._immediate_error = error

	def reject_on_timeout(self, timeout_ms: float | None, message: str) -> None:
		if timeout_ms is None:
			return
		failure: asyncio.Future[Any] = self._loop.create_future()

		def _fire() -> None:
			if not failure.done():
				failure.set_exception(WaitTimeoutError(message))

		handle = self._loop.call_later(timeout_ms / 1000, _fire)
		self._reject_on(failure, handle.cancel)

	def reject_on_event(
		self,
		source: ChannelOwner | None,
		event: str,
		error: BaseException,
		predicate: Callable[..., bool] | None = None,
	) -> None:
		if source is None:
			return
		fired, _ = self.event_future(source, event, predicate)
		failure: asyncio.Future[Any] = self._loop.create_future()

		def _convert(f: asyncio.Future[Any]) -> None:
			if f.cancelled() or failure.done():
				return
			f.exception()
			failure.set_exception(error)

		fired.add_done_callback(_convert)
		self._reject_on(failure, None)

	async def wait_for_event(
		self,
		source: ChannelOwner,
		event: str,
		predicate: Callable[..., bool] | None = None,
	) -> Any:
		fired, detach = self.event_future(source, event, predicate)
		return await self.wait_for_future(fired, detach)

	def expect(self, source: ChannelOwner, event: str, predicate: Callable[..., bool] | None = None) -> EventContextManager[Any]:
		"""Subscribe now and wait in the background; see ``EventContextManager``."""
		fired, detach = self.event_future(source, event, predicate)

		async def _wait() -> Any:
			with self:
				return await self.wait_for_future(fired, detach)

		return self.background(_wait())

	def background(self, wait: Awaitable[T]) -> EventContextManager[T]:
		"""Run ``wait`` as a task; the waiter is disposed when it ends, even if cancelled before starting."""
		task = asyncio.ensure_future(wait)
		task.add_done_callback(lambda _: self.dispose())
		return EventContextManager(task)

	async def wait_for_future(self, future: Awaitable[T], dispose: Callable[[], None] | None = None) -> T:
		"""Resolve with ``future`` unless a failure source settles first."""
		target: asyncio.Future[T] | None = None
		try:
			if self._immediate_error is not None:
				if asyncio.iscoroutine(future):
					future.close()
				raise self._immediate_error
			target = asyncio.ensure_future(future)
			done, _ = await asyncio.wait([target, *self._failures], return_when=asyncio.FIRST_COMPLETED)
			if dispose is not None:
				dispose()
			if target not in done:
				next(iter(done)).result()
			return await target
		except asyncio.CancelledError:
			if dispose is not None:
				dispose()
			if target is not None and not target.done():
				target.cancel()
			self.dispose()
			raise
		except TimeoutError as exc:
			if dispose is not None:
				dispose()
			self._error = repr(exc)
			self.dispose()
			raise WaitTimeoutError(str(exc) + format_log_recording(self._logs)) from exc
		except Exception as exc:
			if dispose is not None:
				dispose()
			self._error = repr(exc)
			self.dispose()
			error_type = TargetClosedError if isinstance(exc, TargetClosedError) else BrowserChannelError
			raise error_type(str(exc) + format_log_recording(self._logs)) from exc

	def dispose(self) -> None:
		if self._disposed:
			return
		self._disposed = True
		for teardown in self._teardown:
			teardown()
		self._teardown.clear()
		for failure in self._failures:
			if not failure.done():
				failure.cancel()
			elif not failure.cancelled():
				failure.exception()
		self._send_info({'phase': 'after', 'error': self._error})

	def _reject_on(self, failure: asyncio.Future[Any], teardown: Callable[[], None] | None) -> None:
		self._failures.append(failure)
		if teardown is not None:
			self._teardown.append(teardown)

	def event_future(
		self,
		source: ChannelOwner,
		event: str,
		predicate: Callable[..., bool] | None = None,
	) -> tuple[asyncio.Future[Any], Callable[[], None]]:
		"""Attach a one-shot listener now; returns its future and a detach callback."""
		fired: asyncio.Future[Any] = self._loop.create_future()
		if self._immediate_error is not None:
			return fired, lambda: None

		def _listener(*args: Any) -> None:
			if fired.done():
				return
			payload = args[0] if len(args) == 1 else (args or None)
			try:
				if predicate is not None and not predicate(payload):
					return
				fired.set_result(payload)
			except Exception as exc:
				fired.set_exception(exc)
			source.remove_listener(event, _listener)

		def _detach() -> None:
			source.remove_listener(event, _listener)

		source.on(event, _listener)
		self._teardown.append(_detach)
		return fired, _detach

	def _send_info(self, info: dict[str, Any]) -> None:
		self._channel_owner._channel.send_no_reply('waitForEventInfo', {'info': {'waitId': self._wait_id, **info}})


class EventInfo(Generic[T]):
	def __init__(self, future: asyncio.Future[T]):
		self._future = future

	@property
	def value(self) -> asyncio.Future[T]:
		"""Awaitable resolving to the event payload once the wait succeeds."""
		return self._future

	def is_done(self) -> bool:
		return self._future.done()


class EventContextManager(Generic[T]):
	"""``async with owner.expect_event(...) as info:`` then ``await info.value``.

	The listener is attached before the block runs, so actions inside the block can
	trigger the event. If the block raises, the wait is cancelled and cleaned up.
	"""

	def __init__(self, future: asyncio.Future[T]):
		self._event = EventInfo(future)

	async def __aenter__(self) -> EventInfo[T]:
		return self._event

	async def __aexit__(self, exc_type, exc, tb) -> None:
		if exc_type is not None:
			self._event._future.cancel()
			await asyncio.gather(self._event._future, return_exceptions=True)
			return
		await self._event.value
