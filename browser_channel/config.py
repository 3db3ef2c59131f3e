"""Configuration injected into connections and the objects they own."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat

RouteOrder = Literal['newest_first', 'oldest_first']
UnroutedRequestPolicy = Literal['continue', 'abort']


class ChannelConfig(BaseModel):
	"""Defaults shared by every object created on a connection."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	default_timeout_ms: float = Field(default=30_000.0, gt=0)
	default_navigation_timeout_ms: PositiveFloat | None = None
	expect_timeout_ms: float = Field(default=5_000.0, gt=0)
	page_route_order: RouteOrder = 'newest_first'
	context_route_order: RouteOrder = 'newest_first'
	unrouted_request_policy: UnroutedRequestPolicy = 'continue'
