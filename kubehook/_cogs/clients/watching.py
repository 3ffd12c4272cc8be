"""
Watching and streaming watch-events.

Every watch-stream starts with a regular listing, which is then continued
by the watching from the list's resource version. The end of the listing
is marked by a special bookmark, so that the consumers (informers) know
when their caches are fully populated and can be considered synced.

If the watch-stream is disconnected or expires (HTTP 410 Gone), the whole
cycle is repeated from the listing, so the consumers must be ready to see
the same objects again, and to lose the objects deleted while disconnected.
"""
import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from typing import cast

import aiohttp

from kubehook._cogs.aiokits import aiotasks
from kubehook._cogs.clients import api, errors, fetching
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS_CODE = 429
DEFAULT_RETRY_DELAY_SECONDS = 1


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


class Bookmark(enum.Enum):
    """ Special marks sent in the stream among raw events. """
    LISTED = enum.auto()  # the listing is over, now streaming.


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        field_selector: str | None = None,
        _iterations: int | None = None,  # used in tests/mocks/fixtures
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """
    Stream the watch-events infinitely.

    This routine never ends gracefully. If a watcher's stream fails,
    a new one is recreated, and the stream continues.
    It only exits with unrecoverable exceptions or on cancellation.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while _iterations is None or _iterations > 0:  # equivalent to `while True` in non-test mode
            _iterations = None if _iterations is None else _iterations - 1
            stream = continuous_watch(
                settings=settings,
                resource=resource,
                namespace=namespace,
                field_selector=field_selector,
            )
            try:
                async for raw_event in stream:
                    yield raw_event
            except errors.APIClientError as e:
                if e.status != HTTP_TOO_MANY_REQUESTS_CODE:
                    raise
                logger.warning(f"Too many requests to the server, will retry after "
                               f"{DEFAULT_RETRY_DELAY_SECONDS} seconds: {e}")
                await asyncio.sleep(DEFAULT_RETRY_DELAY_SECONDS)
            await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        field_selector: str | None = None,
        stopper: aiotasks.Future | None = None,
) -> AsyncIterator[Bookmark | bodies.RawEvent]:

    # First, list the resources regularly, and get the list's resource version.
    # Simulate the events with type "None" for the informers to fill their caches.
    try:
        objs, resource_version = await fetching.list_objs(
            logger=logger,
            settings=settings,
            resource=resource,
            namespace=namespace,
            field_selector=field_selector,
        )
        for obj in objs:
            yield {'type': None, 'object': obj}

    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError):
        return

    # Notify the watcher that the initial listing is over, even if there was nothing yielded.
    yield Bookmark.LISTED

    # The individual watching API calls are disconnected by timeouts even if the stream is fine.
    while stopper is None or not stopper.done():
        stream = watch_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            field_selector=field_selector,
            since=resource_version,
            stopper=stopper,
        )
        async for raw_input in stream:
            raw_type = raw_input['type']
            raw_object = raw_input['object']

            # "410 Gone" is for the "resource version too old" error, we must restart watching.
            if raw_type == 'ERROR' and cast(bodies.RawError, raw_object)['code'] == 410:
                where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
                logger.debug(f"Restarting the watch-stream for {resource} {where}.")
                return  # out of the regular stream, to the infinite stream.

            if raw_type == 'ERROR':
                raise WatchingError(f"Error in the watch-stream: {raw_object}")

            if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
                logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                continue

            # Keep the latest seen resource version for continuation of the stream on disconnects.
            body = cast(bodies.RawBody, raw_object)
            resource_version = body.get('metadata', {}).get('resourceVersion', resource_version)

            yield cast(bodies.RawEvent, raw_input)


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        field_selector: str | None = None,
        since: str | None = None,
        stopper: aiotasks.Future | None = None,
) -> AsyncIterator[dict]:
    """
    Watch objects of a specific resource type since the specific version.
    """
    params: dict[str, str] = {}
    params['watch'] = 'true'
    if since is not None:
        params['resourceVersion'] = since
    if field_selector is not None:
        params['fieldSelector'] = field_selector
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    connect_timeout = (
        settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )

    # Stream the parsed events from the response until it is closed server-side.
    try:
        async for raw_input in api.stream(
            url=resource.get_url(namespace=namespace, params=params),
            logger=logger,
            settings=settings,
            stopper=stopper,
            timeout=aiohttp.ClientTimeout(
                total=settings.watching.client_timeout,
                sock_connect=connect_timeout,
            ),
        ):
            yield raw_input

    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError):
        pass
