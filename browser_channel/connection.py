"""Connection to the out-of-process driver and the base class of remote proxies.

The wire format and driver process are owned by the transport. This module only
needs a coroutine that sends a named command to a remote object and returns its
reply, plus a sink (``Connection.dispatch``) for events the driver raises.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Protocol

from uuid_extensions import uuid7str

from browser_channel.config import ChannelConfig
from browser_channel.event_subscriptions import EventSubscriptions

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


class Transport(Protocol):
	async def send(self, guid: str, method: str, params: dict[str, Any]) -> Any: ...


class Connection:
	"""Routes commands to the transport and inbound events to local objects."""

	def __init__(self, transport: Transport, config: ChannelConfig | None = None):
		self.transport = transport
		self.config = config or ChannelConfig()
		self._objects: dict[str, ChannelOwner] = {}
		self._pending_tasks: set[asyncio.Task[Any]] = set()

	def register(self, owner: ChannelOwner) -> None:
		self._objects[owner.guid] = owner

	def unregister(self, guid: str) -> None:
		self._objects.pop(guid, None)

	def get_object(self, guid: str) -> ChannelOwner | None:
		return self._objects.get(guid)

	async def send_message_to_server(self, guid: str, method: str, params: dict[str, Any] | None = None) -> Any:
		logger.debug(f'SEND ► {guid}.{method}')
		return await self.transport.send(guid, method, params or {})

	def send_no_reply(self, guid: str, method: str, params: dict[str, Any] | None = None) -> None:
		"""Fire-and-forget send for diagnostics and optimizations; failures are only logged."""
		loop = asyncio.get_running_loop()

		async def _send() -> None:
			try:
				await self.send_message_to_server(guid, method, params)
			except Exception as exc:
				logger.debug(f'Ignored failure of {guid}.{method}: {exc}')

		self._track(loop.create_task(_send()))

	def dispatch(self, message: dict[str, Any]) -> None:
		"""Deliver one inbound event message: ``{'guid', 'method', 'params'}``."""
		guid = message['guid']
		method = message['method']
		owner = self._objects.get(guid)
		if owner is None:
			logger.debug(f'Dropping {method} for unknown object {guid}')
			return
		result = owner._on_message(method, message.get('params') or {})
		if inspect.isawaitable(result):
			task = asyncio.ensure_future(result)
			task.add_done_callback(lambda t: self._log_dispatch_failure(t, guid, method))
			self._track(task)

	async def wait_until_idle(self) -> None:
		"""Wait for every task spawned by dispatch or send_no_reply, including ones they spawn."""
		while self._pending_tasks:
			await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

	def _track(self, task: asyncio.Task[Any]) -> None:
		self._pending_tasks.add(task)
		task.add_done_callback(self._pending_tasks.discard)

	def _log_dispatch_failure(self, task: asyncio.Task[Any], guid: str, method: str) -> None:
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error(f'Handling {method} on {guid} failed: {type(exc).__name__}: {exc}', exc_info=exc)


class Channel:
	"""Command endpoint of one remote object."""

	def __init__(self, connection: Connection, guid: str):
		self._connection = connection
		self.guid = guid

	async def send(self, method: str, params: dict[str, Any] | None = None) -> Any:
		return await self._connection.send_message_to_server(self.guid, method, params)

	def send_no_reply(self, method: str, params: dict[str, Any] | None = None) -> None:
		self._connection.send_no_reply(self.guid, method, params)


class ChannelOwner:
	"""Local proxy for a remote object.

	``EVENTS`` is the table of event names this type raises; subscribing to any
	other name is an error. ``EVENT_SUBSCRIPTIONS`` maps the subset of them that the
	driver only forwards on request to their remote subscription names.
	"""

	EVENTS: ClassVar[frozenset[str]] = frozenset()
	EVENT_SUBSCRIPTIONS: ClassVar[dict[str, str]] = {}

	def __init__(self, connection: Connection, guid: str | None = None):
		self._connection = connection
		self._guid = guid or uuid7str()
		self._channel = Channel(connection, self._guid)
		self._events = EventSubscriptions(self.EVENT_SUBSCRIPTIONS, send=self._channel.send_no_reply)
		self._message_handlers: dict[str, MessageHandler] = {}
		for event, remote_name in self.EVENT_SUBSCRIPTIONS.items():
			self._message_handlers[remote_name] = functools.partial(self._emit_subscribed_event, event)
		connection.register(self)

	@property
	def guid(self) -> str:
		return self._guid

	@property
	def connection(self) -> Connection:
		return self._connection

	@property
	def logger(self) -> logging.Logger:
		return logging.getLogger(f'browser_channel.{type(self).__name__} {self._guid[-4:]}')

	def on(self, event: str, handler: Callable[..., Any]) -> None:
		self._check_event(event)
		self._events.on_handler_add(event, handler)

	def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
		self._check_event(event)
		self._events.on_handler_remove(event, handler)

	def emit(self, event: str, *args: Any) -> bool:
		return self._events.on_handler_invoke(event, *args)

	def listener_count(self, event: str) -> int:
		return self._events.listener_count(event)

	def _check_event(self, event: str) -> None:
		if event not in self.EVENTS:
			raise ValueError(f'{type(self).__name__} has no event "{event}"')

	def _on_message(self, method: str, params: dict[str, Any]) -> Awaitable[None] | None:
		handler = self._message_handlers.get(method)
		if handler is None:
			self.logger.debug(f'No handler for {method}')
			return None
		return handler(params)

	def _emit_subscribed_event(self, event: str, params: dict[str, Any]) -> None:
		self.emit(event, params)

	def _dispose(self) -> None:
		self._connection.unregister(self._guid)
