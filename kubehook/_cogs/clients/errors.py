"""
K8s API errors of the reconcilers and informers.

The client library (``aiohttp``) is an implementation detail: its exceptions
are not spread all over the framework. Instead, the API responses with
the HTTP statuses 4xx/5xx are turned into our own hierarchy of errors,
with the original errors chained as their causes.

Low-level errors (connectivity, SSL/HTTPS) are escalated as is: they are
not of the K8s API domain. They are retried by the API calls, though.

The errors are never shown to the webhook clients: the reconcilers log them
and requeue the failed keys with a backoff.
"""
import collections.abc
import json
from collections.abc import Collection
from typing import Literal, TypedDict

import aiohttp


class RawStatusCause(TypedDict):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict):
    name: str
    uid: str
    retryAfterSeconds: int
    kind: str
    group: str
    causes: Collection[RawStatusCause]


class RawStatus(TypedDict):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(
            self,
            payload: RawStatus | None,
            *,
            status: int,
    ) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> int | None:
        return self._payload.get('code') if self._payload else None

    @property
    def message(self) -> str | None:
        return self._payload.get('message') if self._payload else None

    @property
    def reason(self) -> str | None:
        return self._payload.get('reason') if self._payload else None


class APIClientError(APIError):
    """ HTTP 4xx: the request is wrong and is not retried as is. """


class APIServerError(APIError):
    """ HTTP 5xx: the request can be retried with a backoff. """


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    """ The object was modified since it was read: re-read and retry. """


async def check_response(
        response: aiohttp.ClientResponse,
) -> None:
    """
    Check for specialised K8s errors, and raise with extended information.
    """
    if response.status >= 400:

        # Read the response's body before it is closed by raise_for_status().
        payload: RawStatus | None
        try:
            payload = await response.json()
        except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
            payload = None

        # Only the statuses are trusted: other kinds can contain sensitive data (e.g. secrets).
        if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
            payload = None

        cls: type[APIError]
        match response.status:
            case 401:
                cls = APIUnauthorizedError
            case 403:
                cls = APIForbiddenError
            case 404:
                cls = APINotFoundError
            case 409:
                cls = APIConflictError
            case status if status >= 500:
                cls = APIServerError
            case _:
                cls = APIClientError

        # This call also closes the response's body, so it cannot be read afterwards.
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            raise cls(payload, status=response.status) from e
