"""
Authenticated sessions to K8s API.

Unlike in the full-blown operators, there is no re-authentication here:
the credentials are resolved once on startup (from the service account or
a kubeconfig), and the same session is used until the operator exits.
"""
import base64
import contextlib
import functools
import os
import ssl
import tempfile
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any, TypeVar, cast

import aiohttp

from kubehook._cogs.helpers import versions
from kubehook._cogs.structs import credentials

# Per-operator session to the API. Set by `operator`, so that every task has the same context.
context_var: ContextVar["APIContext"] = ContextVar('context_var')

# A typevar to show that we return a function with the same signature as given.
_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    A decorator to inject a pre-authenticated session to a requesting routine.

    An explicitly passed ``context=`` takes precedence (mostly for tests);
    otherwise, the context of the current operator is used.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        context: APIContext = kwargs.pop('context', None) or context_var.get()
        response = await fn(*args, **kwargs, context=context)
        if isinstance(response, aiohttp.ClientResponse):
            context.add_response(response)
        return response

    return cast(_F, wrapper)


class APIContext:
    """
    A container for an aiohttp session and the contextual info for URLs.

    We assume that the whole operator runs in the same event loop, so there is
    no need to split the sessions for multiple loops. Synchronous callbacks
    are executed in threads, but no API requests are made from there.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: str | None
    responses: list[aiohttp.ClientResponse]

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self.session = session if session is not None else self.make_aiohttp_session(info)
        if self.session.headers.get('User-Agent') is None:
            self.session.headers['User-Agent'] = f'kubehook/{versions.version or "unknown"}'
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.responses = []

    def make_aiohttp_session(self, info: credentials.ConnectionInfo) -> aiohttp.ClientSession:

        # The client certificates are accepted by SSL only as files, so temp files are needed.
        # They are removed as soon as the SSL context is built; no files for path-based configs.
        with contextlib.ExitStack() as stack:
            cert_path = _materialize(stack, info.certificate_path, info.certificate_data)
            pkey_path = _materialize(stack, info.private_key_path, info.private_key_data)
            context = ssl.create_default_context(
                purpose=ssl.Purpose.SERVER_AUTH,
                cafile=info.ca_path,
                cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
            )
            if cert_path and pkey_path:
                context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

        if info.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        headers: dict[str, str] = {}
        if info.scheme and info.token:
            headers['Authorization'] = f'{info.scheme} {info.token}'
        elif info.scheme:
            headers['Authorization'] = f'{info.scheme}'
        elif info.token:
            headers['Authorization'] = f'Bearer {info.token}'

        auth: aiohttp.BasicAuth | None = None
        if info.username and info.password:
            auth = aiohttp.BasicAuth(info.username, info.password)

        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=context),
            headers=headers,
            auth=auth,
        )

    def add_response(self, response: aiohttp.ClientResponse) -> None:
        # Forget the closed responses, remember the open ones to close them on exit.
        self.responses[:] = [_response for _response in self.responses if not _response.closed]
        if not response.closed:
            self.responses.append(response)

    async def close(self) -> None:
        for response in self.responses:
            if not response.closed:
                response.close()
        self.responses.clear()
        await self.session.close()


def _materialize(
        stack: contextlib.ExitStack,
        path: str | None,
        data: bytes | None,
) -> str | os.PathLike[str] | None:
    if path:
        return path
    elif data:
        file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
        file.write(decode_to_pem(data).encode('ascii'))
        return file.name
    else:
        return None


def decode_to_pem(data: str | bytes) -> str:
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
