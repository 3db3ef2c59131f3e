"""Reference-counted local listeners that toggle remote event forwarding."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

logger = logging.getLogger(__name__)

SubscriptionSender = Callable[[str, dict[str, Any]], None]


class EventSubscriptions:
	"""Multicast listener table for one remote object.

	Only events listed in ``remote_names`` are forwarded by the driver on demand:
	the first local listener sends ``updateSubscription`` with ``enabled=True`` and
	removing the last one sends ``enabled=False``. Other events are local only.
	"""

	def __init__(self, remote_names: Mapping[str, str], send: SubscriptionSender | None = None):
		self._remote_names = dict(remote_names)
		self._send = send
		self._emitter = AsyncIOEventEmitter()

	@property
	def remote_names(self) -> dict[str, str]:
		return dict(self._remote_names)

	def listener_count(self, event: str) -> int:
		return len(self._emitter.listeners(event))

	def on_handler_add(self, event: str, handler: Callable[..., Any]) -> None:
		if self.listener_count(event) == 0:
			self._update_subscription(event, True)
		self._emitter.on(event, handler)

	def on_handler_remove(self, event: str, handler: Callable[..., Any]) -> None:
		if handler not in self._emitter.listeners(event):
			return
		self._emitter.remove_listener(event, handler)
		if self.listener_count(event) == 0:
			self._update_subscription(event, False)

	def on_handler_invoke(self, event: str, *args: Any) -> bool:
		if self.listener_count(event) == 0:
			return False
		return self._emitter.emit(event, *args)

	def _update_subscription(self, event: str, enabled: bool) -> None:
		remote_name = self._remote_names.get(event)
		if remote_name is None or self._send is None:
			return
		try:
			self._send('updateSubscription', {'event': remote_name, 'enabled': enabled})
		except Exception as exc:
			logger.debug(f'Failed to update subscription for "{remote_name}" (enabled={enabled}): {exc}')
