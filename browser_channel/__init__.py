"""Client-side dispatch core for an out-of-process browser automation driver."""

import logging

from .browser_context import BrowserContext
from .config import ChannelConfig
from .connection import Channel, ChannelOwner, Connection, Transport
from .errors import (
	BrowserChannelError,
	RouteAlreadyHandledError,
	RouteHandlerError,
	TargetClosedError,
	WaitTimeoutError,
)
from .event_subscriptions import EventSubscriptions
from .frame import Frame, FrameNavigatedEvent
from .network import Request, RequestInfo, Response, ResponseInfo, Route
from .page import Download, Page
from .route_handler import RouteHandler, UnrouteBehavior
from .routing import RouteRegistry
from .timeout_settings import TimeoutSettings
from .url_matcher import URLMatcher, glob_to_regex
from .waiter import EventContextManager, EventInfo, Waiter

__all__ = [
	'BrowserChannelError',
	'BrowserContext',
	'Channel',
	'ChannelConfig',
	'ChannelOwner',
	'Connection',
	'Download',
	'EventContextManager',
	'EventInfo',
	'EventSubscriptions',
	'Frame',
	'FrameNavigatedEvent',
	'Page',
	'Request',
	'RequestInfo',
	'Response',
	'ResponseInfo',
	'Route',
	'RouteAlreadyHandledError',
	'RouteHandler',
	'RouteHandlerError',
	'RouteRegistry',
	'TargetClosedError',
	'TimeoutSettings',
	'Transport',
	'URLMatcher',
	'UnrouteBehavior',
	'WaitTimeoutError',
	'Waiter',
	'glob_to_regex',
]

logging.getLogger('browser_channel').addHandler(logging.NullHandler())
