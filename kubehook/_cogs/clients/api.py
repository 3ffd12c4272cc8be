import asyncio
import collections.abc
import itertools
import json
from collections.abc import AsyncIterator, Mapping
from typing import Any

import aiohttp

from kubehook._cogs.aiokits import aiotasks
from kubehook._cogs.clients import auth, errors
from kubehook._cogs.configs import configuration
from kubehook._cogs.helpers import typedefs


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        context: auth.APIContext | None = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Perform a request with retries on the connection & server-side errors.

    Client-side errors (4xx) are raised immediately: retrying them is useless.
    The response is checked for errors, but its body is not read or parsed.
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")

    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    backoffs = settings.networking.error_backoffs
    backoffs = backoffs if isinstance(backoffs, collections.abc.Iterable) else [backoffs]
    count = len(backoffs) + 1 if isinstance(backoffs, collections.abc.Sized) else None
    backoff: float | None
    for retry, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
        idx = f"#{retry}/{count}" if count is not None else f"#{retry}"
        what = f"{method.upper()} {url}"
        try:
            if retry > 1:
                logger.debug(f"Request attempt {idx}: {what}")

            response = await context.session.request(
                method=method,
                url=url,
                json=payload,
                headers=headers,
                timeout=timeout,
            )
            await errors.check_response(response)  # but do not parse it!

        except (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError) as e:
            if backoff is None:  # i.e. the last or the only attempt.
                logger.error(f"Request attempt {idx} failed; escalating: {what} -> {e!r}")
                raise
            else:
                logger.error(f"Request attempt {idx} failed; will retry: {what} -> {e!r}")
                await asyncio.sleep(backoff)  # non-awakable! but still cancellable.
        else:
            if retry > 1:
                logger.debug(f"Request attempt {idx} succeeded: {what}")
            return response

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.


async def get(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> Any:
    response = await request(method='get', url=url, settings=settings, logger=logger)
    async with response:
        return await response.json()


async def put(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        payload: object,
        logger: typedefs.Logger,
) -> Any:
    response = await request(method='put', url=url, payload=payload,
                             settings=settings, logger=logger)
    async with response:
        return await response.json()


async def stream(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        timeout: aiohttp.ClientTimeout | None = None,
        stopper: aiotasks.Future | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """
    Yield the parsed JSON lines of a long-running response (e.g. a watch).

    If the stopper is set, the response is closed and the stream is ended
    as soon as the stopper is resolved, with no error.
    """
    response = await request(method='get', url=url, timeout=timeout,
                             settings=settings, logger=logger)
    response_close_callback = lambda _: response.close()  # to remove the positional arg.
    if stopper is not None:
        stopper.add_done_callback(response_close_callback)
    try:
        async with response:
            async for line in iter_jsonlines(response.content):
                yield json.loads(line.decode('utf-8'))
    except aiohttp.ClientConnectionError:
        if stopper is None or not stopper.done():
            raise
    finally:
        if stopper is not None:
            stopper.remove_done_callback(response_close_callback)


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Iterate line by line over the response's content.

    The aiohttp's own line iteration fails if a line is longer than 128 KB.
    The watched secrets and CRDs (with their OpenAPI schemas) can be much
    longer, up to megabytes, so the lines are split from the raw chunks.
    """
    buffer = b''
    async for data in content.iter_chunked(chunk_size):
        buffer += data
        del data

        start = 0
        index = buffer.find(b'\n', start)
        while index >= 0:
            line = buffer[start:index]
            if line:
                yield line
            del line
            start = index + 1
            index = buffer.find(b'\n', start)

        if start > 0:
            buffer = buffer[start:]

    if buffer:
        yield buffer
