"""
Raw bodies of the objects as they come from the API or the admission reviews.

Only the loose type hints are provided: the bodies are plain JSON-like dicts.
The typed views of the users' resources are in :mod:`kubehook._core.intents`.
"""
from collections.abc import Mapping, MutableMapping
from typing import Any, Literal, TypedDict

RawBody = MutableMapping[str, Any]
RawMeta = Mapping[str, Any]

# Event types as sent by K8s API; ``None`` is for the simulated events of the initial listing.
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']


class RawEvent(TypedDict):
    type: RawEventType
    object: RawBody


class RawError(TypedDict, total=False):
    apiVersion: str  # usually: Literal['v1']
    kind: str  # usually: Literal['Status']
    metadata: RawMeta
    code: int
    reason: str
    status: str
    message: str


def get_name(body: Mapping[str, Any]) -> str | None:
    return body.get('metadata', {}).get('name')


def get_namespace(body: Mapping[str, Any]) -> str | None:
    return body.get('metadata', {}).get('namespace')
