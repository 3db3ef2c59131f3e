"""Tests for navigation, popup and generic event waits on pages and contexts."""

from __future__ import annotations

import asyncio
import re
from typing import Any

import pytest

from browser_channel import (
	BrowserChannelError,
	BrowserContext,
	Connection,
	Download,
	Frame,
	FrameNavigatedEvent,
	Page,
	Request,
	Response,
	TargetClosedError,
	WaitTimeoutError,
)


def _navigated(frame_guid: str, url: str, **extra: Any) -> dict[str, Any]:
	return {'guid': frame_guid, 'method': 'navigated', 'params': {'url': url, **extra}}


async def _started(coro) -> asyncio.Task:
	task = asyncio.ensure_future(coro)
	await asyncio.sleep(0)
	return task


@pytest.mark.asyncio
async def test_wait_for_navigation_resolves_on_commit(connection: Connection, page: Page) -> None:
	committed: list[Frame] = []
	page.on('framenavigated', committed.append)
	task = await _started(page.wait_for_navigation())

	connection.dispatch(_navigated('frame-1', 'https://example.com/next', newDocument=True))
	event = await task

	assert isinstance(event, FrameNavigatedEvent)
	assert event.url == 'https://example.com/next'
	assert page.url == 'https://example.com/next'
	assert committed == [page.main_frame]


@pytest.mark.asyncio
async def test_wait_for_navigation_filters_by_url(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_navigation(url='**/done'))

	connection.dispatch(_navigated('frame-1', 'https://example.com/step-1'))
	await asyncio.sleep(0)
	assert not task.done()
	connection.dispatch(_navigated('frame-1', 'https://example.com/done'))

	assert (await task).url == 'https://example.com/done'


@pytest.mark.asyncio
async def test_expect_navigation_listens_before_the_action(connection: Connection, page: Page) -> None:
	async with page.expect_navigation() as navigation:
		connection.dispatch(_navigated('frame-1', 'https://example.com/clicked'))

	assert (await navigation.value).url == 'https://example.com/clicked'
	assert page.main_frame.listener_count('navigated') == 0


@pytest.mark.asyncio
async def test_failed_navigation_raises(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_navigation())
	connection.dispatch(_navigated('frame-1', 'https://example.com/broken', error='net::ERR_ABORTED'))

	with pytest.raises(BrowserChannelError, match='net::ERR_ABORTED'):
		await task
	assert page.url == 'https://example.com/'


@pytest.mark.asyncio
async def test_page_close_rejects_navigation(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_navigation())
	connection.dispatch({'guid': 'page-1', 'method': 'close'})

	with pytest.raises(TargetClosedError, match='Navigation failed because page was closed!'):
		await task
	assert page.is_closed()


@pytest.mark.asyncio
async def test_page_crash_rejects_navigation(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_navigation())
	connection.dispatch({'guid': 'page-1', 'method': 'crash'})

	with pytest.raises(TargetClosedError, match='page crashed'):
		await task


@pytest.mark.asyncio
async def test_detached_frame_rejects_only_its_own_navigation(connection: Connection, page: Page) -> None:
	connection.dispatch(
		{'guid': 'page-1', 'method': 'frameAttached', 'params': {'frame': {'guid': 'child-1', 'parentFrame': 'frame-1'}}}
	)
	child = page.frames[1]
	assert child.parent_frame is page.main_frame

	child_wait = await _started(child.wait_for_navigation())
	main_wait = await _started(page.wait_for_navigation())
	connection.dispatch({'guid': 'child-1', 'method': 'detached'})

	with pytest.raises(TargetClosedError, match='Navigating frame was detached!'):
		await child_wait
	assert child.is_detached()
	assert not main_wait.done()

	connection.dispatch(_navigated('frame-1', 'https://example.com/after'))
	assert (await main_wait).url == 'https://example.com/after'


@pytest.mark.asyncio
async def test_navigation_timeout_comes_from_page_settings(page: Page) -> None:
	page.set_default_navigation_timeout(50)

	with pytest.raises(WaitTimeoutError, match=r'Timeout 50(\.0)?ms exceeded\.') as exc_info:
		await page.wait_for_navigation(url='**/never')

	assert 'waiting for navigation to "**/never"' in str(exc_info.value)


@pytest.mark.asyncio
async def test_closed_page_rejects_navigation_immediately(page: Page) -> None:
	await page.close()

	with pytest.raises(TargetClosedError, match='page was closed'):
		await page.wait_for_navigation()
	assert page.listener_count('close') == 0


@pytest.mark.asyncio
async def test_wait_for_url(connection: Connection, page: Page) -> None:
	await asyncio.wait_for(page.wait_for_url('**/example.com/'), timeout=1)

	task = await _started(page.wait_for_url('**/account'))
	connection.dispatch(_navigated('frame-1', 'https://example.com/account'))
	await task
	assert page.url == 'https://example.com/account'


@pytest.mark.asyncio
async def test_expect_popup(connection: Connection, context: BrowserContext, page: Page) -> None:
	async with page.expect_popup() as popup_info:
		connection.dispatch(
			{'guid': 'page-1', 'method': 'popup', 'params': {'page': {'guid': 'popup-1', 'mainFrame': 'popup-frame', 'url': 'https://pop.example/'}}}
		)

	popup = await popup_info.value
	assert popup.opener is page
	assert popup.url == 'https://pop.example/'
	assert popup in context.pages


@pytest.mark.asyncio
async def test_context_expect_page(connection: Connection, context: BrowserContext) -> None:
	async with context.expect_page(lambda new_page: new_page.url.startswith('https://b.')) as page_info:
		connection.dispatch({'guid': 'context-1', 'method': 'page', 'params': {'page': {'guid': 'p-a', 'url': 'https://a.example/'}}})
		connection.dispatch({'guid': 'context-1', 'method': 'page', 'params': {'page': {'guid': 'p-b', 'url': 'https://b.example/'}}})

	assert (await page_info.value).guid == 'p-b'
	assert [p.guid for p in context.pages] == ['p-a', 'p-b']


@pytest.mark.asyncio
async def test_wait_for_event_with_predicate(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_event('frameattached', predicate=lambda frame: frame.name == 'b'))
	for name in ('a', 'b'):
		connection.dispatch({'guid': 'page-1', 'method': 'frameAttached', 'params': {'frame': {'guid': f'f-{name}', 'name': name}}})

	frame = await task
	assert frame.guid == 'f-b'
	assert page.listener_count('frameattached') == 0


@pytest.mark.asyncio
async def test_event_wait_rejects_when_page_closes(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_event('popup'))
	connection.dispatch({'guid': 'page-1', 'method': 'close'})

	with pytest.raises(TargetClosedError, match='Page closed'):
		await task


@pytest.mark.asyncio
async def test_waiting_for_close_is_not_rejected_by_close(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_event('close'))
	connection.dispatch({'guid': 'page-1', 'method': 'close'})

	assert await task is page


@pytest.mark.asyncio
async def test_event_wait_rejects_when_context_closes(connection: Connection, context: BrowserContext) -> None:
	task = await _started(context.wait_for_event('page'))
	connection.dispatch({'guid': 'context-1', 'method': 'close'})

	with pytest.raises(TargetClosedError, match='Context closed'):
		await task
	assert context.is_closed()


@pytest.mark.asyncio
async def test_event_wait_timeout_uses_page_default(page: Page, context: BrowserContext) -> None:
	"""The page inherits the context default until it sets its own."""
	context.set_default_timeout(30)

	with pytest.raises(WaitTimeoutError, match='while waiting for event "popup"'):
		await page.wait_for_event('popup')

	page.set_default_timeout(40)
	with pytest.raises(WaitTimeoutError, match=r'Timeout 40(\.0)?ms exceeded'):
		await page.wait_for_event('download')


@pytest.mark.asyncio
async def test_zero_timeout_waits_forever(page: Page) -> None:
	with pytest.raises(TimeoutError) as exc_info:
		await asyncio.wait_for(page.wait_for_event('popup', timeout=0), timeout=0.1)

	assert not isinstance(exc_info.value, WaitTimeoutError)
	assert page.listener_count('popup') == 0


@pytest.mark.asyncio
async def test_unknown_event_names_are_rejected(page: Page) -> None:
	with pytest.raises(ValueError, match='Page has no event "loaded"'):
		page.expect_event('loaded')


def _network_event(guid: str, method: str, **payload: Any) -> dict[str, Any]:
	return {'guid': guid, 'method': method, 'params': payload}


@pytest.mark.asyncio
async def test_wait_for_request_filters_by_glob(connection: Connection, page: Page, transport) -> None:
	task = await _started(page.wait_for_request('**/api/orders'))

	connection.dispatch(_network_event('page-1', 'request', request={'url': 'https://example.com/static/app.js'}))
	await asyncio.sleep(0)
	assert not task.done()
	connection.dispatch(_network_event('page-1', 'request', request={'url': 'https://example.com/api/orders', 'method': 'POST'}))

	request = await task
	assert isinstance(request, Request)
	assert request.method == 'POST'
	await connection.wait_until_idle()
	assert transport.params_for('updateSubscription', guid='page-1') == [
		{'event': 'request', 'enabled': True},
		{'event': 'request', 'enabled': False},
	]


@pytest.mark.asyncio
async def test_expect_response_by_regex(connection: Connection, page: Page) -> None:
	async with page.expect_response(re.compile(r'/api/orders$')) as response_info:
		connection.dispatch(_network_event('page-1', 'response', response={'url': 'https://example.com/api/users', 'status': 200}))
		connection.dispatch(
			_network_event(
				'page-1',
				'response',
				response={
					'url': 'https://example.com/api/orders',
					'status': 404,
					'statusText': 'Not Found',
					'request': {'url': 'https://example.com/api/orders'},
				},
			)
		)

	response = await response_info.value
	assert isinstance(response, Response)
	assert response.status == 404
	assert response.status_text == 'Not Found'
	assert not response.ok
	assert response.request is not None
	assert response.request.url == 'https://example.com/api/orders'


@pytest.mark.asyncio
async def test_network_predicates_receive_the_request(connection: Connection, page: Page) -> None:
	task = await _started(page.wait_for_request(lambda request: request.method == 'POST'))

	connection.dispatch(_network_event('page-1', 'request', request={'url': 'https://example.com/form'}))
	await asyncio.sleep(0)
	assert not task.done()
	connection.dispatch(_network_event('page-1', 'request', request={'url': 'https://example.com/form', 'method': 'POST'}))

	assert (await task).url == 'https://example.com/form'


@pytest.mark.asyncio
async def test_relative_network_globs_use_the_context_base_url(connection: Connection, page: Page, context: BrowserContext) -> None:
	context.base_url = 'https://example.com/app/'
	task = await _started(page.wait_for_response('api/*'))

	connection.dispatch(_network_event('page-1', 'response', response={'url': 'https://example.com/api/users', 'status': 200}))
	await asyncio.sleep(0)
	assert not task.done()
	connection.dispatch(_network_event('page-1', 'response', response={'url': 'https://example.com/app/api/users', 'status': 204}))

	response = await task
	assert response.ok
	assert response.url == 'https://example.com/app/api/users'


@pytest.mark.asyncio
async def test_expect_download(connection: Connection, page: Page) -> None:
	async with page.expect_download() as download_info:
		connection.dispatch({'guid': 'page-1', 'method': 'download', 'params': {'url': 'https://example.com/export', 'suggestedFilename': 'report.csv'}})

	download = await download_info.value
	assert isinstance(download, Download)
	assert download.url == 'https://example.com/export'
	assert download.suggested_filename == 'report.csv'


@pytest.mark.asyncio
async def test_context_network_listeners_get_request_objects(connection: Connection, context: BrowserContext) -> None:
	received: list[Request] = []
	context.on('requestfailed', received.append)

	connection.dispatch(_network_event('context-1', 'requestFailed', request={'url': 'https://example.com/broken.js', 'resourceType': 'script'}))

	(request,) = received
	assert request.url == 'https://example.com/broken.js'
	assert request.resource_type == 'script'
