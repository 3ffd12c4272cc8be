import pytest

from kubehook._cogs.clients.errors import APIClientError
from kubehook._cogs.clients.watching import Bookmark, WatchingError, continuous_watch, \
                                            infinite_watch
from kubehook._cogs.structs.references import SECRETS


@pytest.fixture()
def listing(mocker):
    return mocker.patch('kubehook._cogs.clients.fetching.list_objs',
                        return_value=([{'metadata': {'name': 'a'}}], '100'))


@pytest.fixture()
def streams(mocker):
    """ The events of the consecutive watch-requests, one list per request. """
    batches = []
    calls = []

    async def stream(url, **kwargs):
        calls.append(url)
        for event in batches.pop(0):
            yield event

    mocker.patch('kubehook._cogs.clients.api.stream', stream)
    return batches, calls


GONE = {'type': 'ERROR', 'object': {'code': 410}}


async def collect(settings, **kwargs):
    return [event async for event in continuous_watch(
        settings=settings, resource=SECRETS, namespace='ns1', **kwargs)]


async def test_listing_then_watching(settings, listing, streams):
    batches, calls = streams
    batches.append([
        {'type': 'ADDED', 'object': {'metadata': {'name': 'b', 'resourceVersion': '101'}}},
        {'type': 'DELETED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '102'}}},
        GONE,
    ])
    events = await collect(settings)
    assert events == [
        {'type': None, 'object': {'metadata': {'name': 'a'}}},
        Bookmark.LISTED,
        {'type': 'ADDED', 'object': {'metadata': {'name': 'b', 'resourceVersion': '101'}}},
        {'type': 'DELETED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '102'}}},
    ]
    assert calls == ['/api/v1/namespaces/ns1/secrets?watch=true&resourceVersion=100']


async def test_watching_continues_from_the_latest_version(settings, listing, streams):
    batches, calls = streams
    batches.append([{'type': 'MODIFIED', 'object': {'metadata': {'name': 'a', 'resourceVersion': '105'}}}])
    batches.append([GONE])
    await collect(settings, field_selector='metadata.name=a')
    assert calls == [
        '/api/v1/namespaces/ns1/secrets?watch=true&resourceVersion=100&fieldSelector=metadata.name%3Da',
        '/api/v1/namespaces/ns1/secrets?watch=true&resourceVersion=105&fieldSelector=metadata.name%3Da',
    ]


async def test_unsupported_events_are_ignored(settings, listing, streams, assert_logs):
    batches, _ = streams
    batches.append([{'type': 'BOOKMARK', 'object': {}}, GONE])
    events = await collect(settings)
    assert events[2:] == []
    assert_logs([r"Ignoring an unsupported event type"])


async def test_errors_in_the_stream(settings, listing, streams):
    batches, _ = streams
    batches.append([{'type': 'ERROR', 'object': {'code': 500, 'message': 'oops'}}])
    with pytest.raises(WatchingError, match=r"Error in the watch-stream"):
        await collect(settings)


async def test_server_timeout_is_passed(settings, listing, streams):
    settings.watching.server_timeout = 60
    batches, calls = streams
    batches.append([GONE])
    await collect(settings)
    assert calls == ['/api/v1/namespaces/ns1/secrets?watch=true&resourceVersion=100&timeoutSeconds=60']


async def test_infinite_watch_restarts(settings, listing, streams, assert_logs):
    settings.watching.reconnect_backoff = 0
    batches, _ = streams
    batches.extend([[GONE], [GONE]])
    events = [event async for event in infinite_watch(
        settings=settings, resource=SECRETS, namespace='ns1', _iterations=2)]
    assert events.count(Bookmark.LISTED) == 2
    assert listing.await_count == 2
    assert_logs([
        r"Starting the watch-stream for secrets.v1 in 'ns1'.",
        r"Restarting the watch-stream",
        r"Restarting the watch-stream",
        r"Stopping the watch-stream for secrets.v1 in 'ns1'.",
    ])


async def test_infinite_watch_escalates_client_errors(settings, mocker):
    mocker.patch('kubehook._cogs.clients.fetching.list_objs',
                 side_effect=APIClientError(None, status=403))
    with pytest.raises(APIClientError):
        async for _ in infinite_watch(settings=settings, resource=SECRETS, namespace='ns1',
                                      _iterations=1):
            pass


async def test_infinite_watch_survives_throttling(settings, listing, streams, mocker):
    settings.watching.reconnect_backoff = 0
    mocker.patch('kubehook._cogs.clients.watching.DEFAULT_RETRY_DELAY_SECONDS', 0)
    listing.side_effect = [APIClientError(None, status=429), ([], None)]
    batches, _ = streams
    batches.append([GONE])
    events = [event async for event in infinite_watch(
        settings=settings, resource=SECRETS, namespace='ns1', _iterations=2)]
    assert events == [Bookmark.LISTED]
