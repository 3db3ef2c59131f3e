"""Typed exceptions for browser_channel."""


class BrowserChannelError(Exception):
	"""Base exception for all browser_channel errors."""

	def __init__(self, message: str):
		self.message = message
		super().__init__(message)


class WaitTimeoutError(BrowserChannelError, TimeoutError):
	"""A wait exceeded its timeout before its condition was met."""


class TargetClosedError(BrowserChannelError):
	"""The page or context a wait depended on was closed, crashed or detached."""


class RouteHandlerError(BrowserChannelError):
	"""A route callback raised while its handler was still active."""

	def __init__(self, url: str, cause: BaseException):
		self.url = url
		super().__init__(f'Route handler for {url} raised: {cause}')


class RouteAlreadyHandledError(BrowserChannelError):
	"""A route was resolved more than once."""

	def __init__(self, url: str):
		self.url = url
		super().__init__(f'Route is already handled! ({url})')
