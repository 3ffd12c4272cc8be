"""
Callback signatures for typing.

Since these signatures contain a lot of copy-pasted kwargs and are
not so important for the codebase, they are moved to this separate module.

The callbacks are the users' functions that are called on admission
in addition to the resources' own defaulting & validation. There are
two variants, selected explicitly when the callbacks are registered:

* :class:`UnstructuredCallback` gets the object as a JSON-like dict
  (``body=``), the same for all kinds, so that one function can serve
  many unrelated kinds with no per-kind glue code;
* :class:`TypedCallback` gets the decoded resource (``resource=``).

All the kwargs are passed by names only. The callbacks must accept
``**kwargs`` for the kwargs they do not use, for forward compatibility.
"""
import dataclasses
from collections.abc import Collection, Coroutine
from typing import Any, Protocol

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, reviews
from kubehook._core.intents import contexts, resources

# A specialised type to inform type-checkers that the callback can be sync or async.
_SyncOrAsyncResult = None | Coroutine[None, None, None]

DEFAULT_OPERATIONS: frozenset[reviews.Operation] = frozenset({'CREATE', 'UPDATE'})


class UnstructuredFn(Protocol):
    def __call__(
            self,
            *args: Any,
            body: bodies.RawBody,
            old: bodies.RawBody | None,
            context: contexts.RequestContext,
            operation: reviews.Operation,
            subresource: str | None,
            userinfo: reviews.UserInfo,
            dryrun: bool,
            warnings: list[str],
            logger: typedefs.Logger,
            **kwargs: Any,
    ) -> _SyncOrAsyncResult: ...


class TypedFn(Protocol):
    def __call__(
            self,
            *args: Any,
            resource: resources.Resource,
            old: resources.Resource | None,
            context: contexts.RequestContext,
            operation: reviews.Operation,
            subresource: str | None,
            userinfo: reviews.UserInfo,
            dryrun: bool,
            warnings: list[str],
            logger: typedefs.Logger,
            **kwargs: Any,
    ) -> _SyncOrAsyncResult: ...


def _operations(operations: Collection[reviews.Operation]) -> frozenset[reviews.Operation]:
    unknown = set(operations) - {'CREATE', 'UPDATE', 'DELETE', 'CONNECT'}
    if unknown:
        raise ValueError(f"Unsupported operations: {sorted(unknown)!r}")
    return frozenset(operations)


@dataclasses.dataclass(frozen=True)
class UnstructuredCallback:
    fn: UnstructuredFn
    operations: frozenset[reviews.Operation] = DEFAULT_OPERATIONS

    def __post_init__(self) -> None:
        object.__setattr__(self, 'operations', _operations(self.operations))


@dataclasses.dataclass(frozen=True)
class TypedCallback:
    fn: TypedFn
    operations: frozenset[reviews.Operation] = DEFAULT_OPERATIONS

    def __post_init__(self) -> None:
        object.__setattr__(self, 'operations', _operations(self.operations))


Callback = TypedCallback | UnstructuredCallback
