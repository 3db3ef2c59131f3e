"""Intercepted requests and the route object handlers use to resolve them."""

from __future__ import annotations

import asyncio
import base64
import json as json_module
import mimetypes
from collections.abc import Awaitable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import anyio
from pydantic import BaseModel, ConfigDict, Field

from browser_channel.connection import ChannelOwner, Connection
from browser_channel.errors import RouteAlreadyHandledError

if TYPE_CHECKING:
	from browser_channel.page import Page


class RequestInfo(BaseModel):
	"""Request snapshot delivered with a ``route`` event."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)

	url: str
	method: str = 'GET'
	headers: dict[str, str] = Field(default_factory=dict)
	post_data: str | None = Field(default=None, alias='postData')
	resource_type: str = Field(default='other', alias='resourceType')
	frame_guid: str | None = Field(default=None, alias='frame')


class FallbackOverrides(BaseModel):
	model_config = ConfigDict(extra='forbid')

	url: str | None = None
	method: str | None = None
	headers: dict[str, str] | None = None
	post_data: str | bytes | None = None


class Request:
	"""Outgoing request as seen by route handlers, including fallback overrides."""

	def __init__(self, info: RequestInfo):
		self._info = info
		self._overrides = FallbackOverrides()

	@property
	def url(self) -> str:
		return self._overrides.url or self._info.url

	@property
	def method(self) -> str:
		return self._overrides.method or self._info.method

	@property
	def headers(self) -> dict[str, str]:
		if self._overrides.headers is not None:
			return dict(self._overrides.headers)
		return dict(self._info.headers)

	@property
	def post_data(self) -> str | None:
		if self._overrides.post_data is None:
			return self._info.post_data
		if isinstance(self._overrides.post_data, bytes):
			return self._overrides.post_data.decode('utf-8', errors='replace')
		return self._overrides.post_data

	@property
	def resource_type(self) -> str:
		return self._info.resource_type

	@property
	def original_url(self) -> str:
		return self._info.url

	def _apply_fallback_overrides(self, overrides: FallbackOverrides) -> None:
		merged = self._overrides.model_dump()
		merged.update({key: value for key, value in overrides.model_dump().items() if value is not None})
		self._overrides = FallbackOverrides(**merged)

	def _fallback_overrides_for_continue(self) -> dict[str, Any]:
		params: dict[str, Any] = {}
		if self._overrides.url is not None:
			params['url'] = self._overrides.url
		if self._overrides.method is not None:
			params['method'] = self._overrides.method
		if self._overrides.headers is not None:
			params['headers'] = [{'name': name, 'value': value} for name, value in self._overrides.headers.items()]
		if self._overrides.post_data is not None:
			post_data = self._overrides.post_data
			raw = post_data if isinstance(post_data, bytes) else post_data.encode('utf-8')
			params['postData'] = base64.b64encode(raw).decode('ascii')
		return params

	def __repr__(self) -> str:
		return f'<Request method={self.method} url={self.url!r}>'


class ResponseInfo(BaseModel):
	"""Response snapshot delivered with a ``response`` event."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)

	url: str
	status: int = 200
	status_text: str = Field(default='', alias='statusText')
	headers: dict[str, str] = Field(default_factory=dict)
	request: RequestInfo | None = None


class Response:
	def __init__(self, info: ResponseInfo):
		self._info = info
		self._request = Request(info.request) if info.request is not None else None

	@property
	def url(self) -> str:
		return self._info.url

	@property
	def status(self) -> int:
		return self._info.status

	@property
	def status_text(self) -> str:
		return self._info.status_text

	@property
	def headers(self) -> dict[str, str]:
		return dict(self._info.headers)

	@property
	def ok(self) -> bool:
		return self.status == 0 or 200 <= self.status <= 299

	@property
	def request(self) -> Request | None:
		return self._request

	def __repr__(self) -> str:
		return f'<Response status={self.status} url={self.url!r}>'


_REQUEST_EVENTS = frozenset({'request', 'requestfinished', 'requestfailed'})


def network_event_payload(event: str, params: dict[str, Any]) -> Any:
	"""Wrap ``request*`` and ``response`` event params in their objects; other events pass through."""
	if event in _REQUEST_EVENTS:
		return Request(RequestInfo.model_validate(params.get('request', params)))
	if event == 'response':
		return Response(ResponseInfo.model_validate(params.get('response', params)))
	return params


class Route(ChannelOwner):
	"""Handle for one intercepted request.

	``fulfill``, ``abort`` and ``continue_`` claim the request; ``fallback`` declines it
	so the next matching handler gets a chance.
	"""

	def __init__(self, connection: Connection, guid: str, request: Request):
		super().__init__(connection, guid)
		self._request = request
		self._handling_future: asyncio.Future[bool] | None = None
		self._did_throw = False
		self._page: Page | None = None

	@classmethod
	def from_params(cls, connection: Connection, params: dict[str, Any]) -> Route:
		"""Build a route from ``route`` event params: ``{'route': {'guid', 'request': {...}}}``."""
		payload = params['route']
		return cls(connection, payload['guid'], Request(RequestInfo.model_validate(payload['request'])))

	@property
	def request(self) -> Request:
		return self._request

	@property
	def did_throw(self) -> bool:
		return self._did_throw

	async def fulfill(
		self,
		status: int | None = None,
		headers: dict[str, str] | None = None,
		body: str | bytes | None = None,
		json: Any = None,
		path: str | Path | None = None,
		content_type: str | None = None,
	) -> None:
		self._check_not_handled()
		params = await self._normalize_fulfill_params(status, headers, body, json, path, content_type)
		params['requestUrl'] = self._request.original_url
		await self._race_with_page_close(self._channel.send('fulfill', params))
		self._report_handled(True)

	async def abort(self, error_code: str = 'failed') -> None:
		self._check_not_handled()
		await self._inner_abort(error_code)
		self._report_handled(True)

	async def continue_(
		self,
		url: str | None = None,
		method: str | None = None,
		headers: dict[str, str] | None = None,
		post_data: str | bytes | None = None,
	) -> None:
		self._check_not_handled()
		self._request._apply_fallback_overrides(
			FallbackOverrides(url=url, method=method, headers=headers, post_data=post_data)
		)
		await self._inner_continue()
		self._report_handled(True)

	async def fallback(
		self,
		url: str | None = None,
		method: str | None = None,
		headers: dict[str, str] | None = None,
		post_data: str | bytes | None = None,
	) -> None:
		self._check_not_handled()
		self._request._apply_fallback_overrides(
			FallbackOverrides(url=url, method=method, headers=headers, post_data=post_data)
		)
		self._report_handled(False)

	async def _inner_continue(self, is_fallback: bool = False) -> None:
		params = {
			'requestUrl': self._request.original_url,
			'isFallback': is_fallback,
			**self._request._fallback_overrides_for_continue(),
		}
		await self._race_with_page_close(self._channel.send('continue', params))

	async def _inner_abort(self, error_code: str = 'failed') -> None:
		params = {'requestUrl': self._request.original_url, 'errorCode': error_code}
		await self._race_with_page_close(self._channel.send('abort', params))

	async def _race_with_page_close(self, command: Awaitable[Any]) -> None:
		"""Send a resolution, but stop caring about its outcome once the page is gone.

		Requests for a popup's first navigation have no page yet.
		"""
		task = asyncio.ensure_future(command)
		closed = self._page._closed_or_crashed if self._page is not None else None
		if closed is None:
			await task
			return
		await asyncio.wait([task, closed], return_when=asyncio.FIRST_COMPLETED)
		if task.done():
			await task
			return
		task.add_done_callback(lambda t: t.cancelled() or t.exception())

	async def _normalize_fulfill_params(
		self,
		status: int | None,
		headers: dict[str, str] | None,
		body: str | bytes | None,
		json: Any,
		path: str | Path | None,
		content_type: str | None,
	) -> dict[str, Any]:
		if json is not None:
			if body is not None or path is not None:
				raise ValueError("Cannot provide both 'json' and 'body' or 'path'")
			body = json_module.dumps(json)

		is_base64 = False
		result_body = ''
		length = 0
		if path is not None:
			content = await anyio.Path(path).read_bytes()
			length = len(content)
			result_body = base64.b64encode(content).decode('ascii')
			is_base64 = True
		elif isinstance(body, str):
			result_body = body
			length = len(body.encode('utf-8'))
		elif isinstance(body, bytes):
			result_body = base64.b64encode(body).decode('ascii')
			length = len(body)
			is_base64 = True

		result_headers = {name.lower(): value for name, value in (headers or {}).items()}
		if content_type:
			result_headers['content-type'] = content_type
		elif json is not None:
			result_headers['content-type'] = 'application/json'
		elif path is not None:
			guessed, _ = mimetypes.guess_type(str(path))
			if guessed:
				result_headers['content-type'] = guessed
		if length > 0 and 'content-length' not in result_headers:
			result_headers['content-length'] = str(length)

		return {
			'status': status or 200,
			'headers': [{'name': name, 'value': value} for name, value in result_headers.items()],
			'body': result_body,
			'isBase64': is_base64,
		}

	def _start_handling(self) -> asyncio.Future[bool]:
		self._handling_future = asyncio.get_running_loop().create_future()
		return self._handling_future

	def _check_not_handled(self) -> None:
		if self._handling_future is None:
			raise RouteAlreadyHandledError(self._request.url)

	def _report_handled(self, handled: bool) -> None:
		future = self._handling_future
		self._handling_future = None
		if future is not None and not future.done():
			future.set_result(handled)
