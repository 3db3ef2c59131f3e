"""Hierarchical default-timeout resolution (page -> context -> config)."""

from __future__ import annotations

from pydantic import NonNegativeFloat, validate_call

from browser_channel.config import ChannelConfig


class TimeoutSettings:
	"""Resolves effective timeouts in milliseconds.

	An explicit per-call value always wins. Otherwise this instance's defaults are
	used, then the parent chain, then the connection's configured fallback.
	"""

	def __init__(self, parent: TimeoutSettings | None = None, config: ChannelConfig | None = None):
		self._parent = parent
		self._config = config or (parent._config if parent is not None else ChannelConfig())
		self._default_timeout: float | None = None
		self._default_navigation_timeout: float | None = None

	@property
	def parent(self) -> TimeoutSettings | None:
		return self._parent

	@property
	def default_timeout(self) -> float | None:
		return self._default_timeout

	@property
	def default_navigation_timeout(self) -> float | None:
		return self._default_navigation_timeout

	@validate_call
	def set_default_timeout(self, timeout: NonNegativeFloat | None) -> None:
		self._default_timeout = timeout

	@validate_call
	def set_default_navigation_timeout(self, timeout: NonNegativeFloat | None) -> None:
		self._default_navigation_timeout = timeout

	def timeout(self, timeout: float | None = None) -> float:
		if timeout is not None:
			return timeout
		if self._default_timeout is not None:
			return self._default_timeout
		if self._parent is not None:
			return self._parent.timeout()
		return self._config.default_timeout_ms

	def navigation_timeout(self, timeout: float | None = None) -> float:
		if timeout is not None:
			return timeout
		if self._default_navigation_timeout is not None:
			return self._default_navigation_timeout
		if self._default_timeout is not None:
			return self._default_timeout
		if self._parent is not None:
			return self._parent.navigation_timeout()
		if self._config.default_navigation_timeout_ms is not None:
			return self._config.default_navigation_timeout_ms
		return self._config.default_timeout_ms

	def expect_timeout(self, timeout: float | None = None) -> float:
		"""Timeout for assertion-style polling waits; not inherited from action defaults."""
		if timeout is not None:
			return timeout
		return self._config.expect_timeout_ms
