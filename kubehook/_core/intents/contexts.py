"""
Per-request state of the admission reviews.

The context is created for every admission review by the decoder, and is
passed explicitly as a parameter to the resources' own defaulting/validation
methods and to the callbacks. Nothing is stored globally between requests.
"""
import dataclasses
from collections.abc import Mapping
from typing import Any

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import reviews


@dataclasses.dataclass(frozen=True)
class RequestContext:
    """
    What, by whom, and against which baseline is being admitted.

    For updates (including the updates of sub-resources), the ``baseline``
    is the decoded old object: the resources can compare themselves to it,
    e.g. to forbid changes of immutable fields. For deletions & connections,
    it is the old object if the server sent one. For creations, it is ``None``.
    """
    operation: reviews.Operation
    baseline: Any = None
    subresource: str | None = None
    userinfo: reviews.UserInfo = dataclasses.field(default_factory=lambda: reviews.UserInfo())
    dryrun: bool = False
    client: Any = None
    logger: typedefs.Logger | None = None

    @property
    def username(self) -> str | None:
        return self.userinfo.get('username') or None

    @property
    def is_create(self) -> bool:
        return self.operation == 'CREATE'

    @property
    def is_update(self) -> bool:
        return self.operation == 'UPDATE'

    @property
    def is_subresource_update(self) -> bool:
        return self.operation == 'UPDATE' and bool(self.subresource)

    @property
    def is_delete(self) -> bool:
        return self.operation == 'DELETE'

    @property
    def is_connect(self) -> bool:
        return self.operation == 'CONNECT'


def build_context(
        payload: Mapping[str, Any],
        *,
        baseline: Any = None,
        client: Any = None,
        logger: typedefs.Logger | None = None,
) -> RequestContext:
    """
    Construct the context from the admission request's payload.

    The operation is taken as declared by the server, but the sub-resource
    is only remembered for the updates: e.g. the status updates of the CRDs
    with the ``status`` sub-resource enabled.
    """
    operation: reviews.Operation = payload.get('operation', 'CREATE')
    subresource = payload.get('subResource') or None
    return RequestContext(
        operation=operation,
        baseline=baseline,
        subresource=subresource if operation == 'UPDATE' and baseline is not None else None,
        userinfo=payload.get('userInfo') or reviews.UserInfo(),
        dryrun=bool(payload.get('dryRun', False)),
        client=client,
        logger=logger,
    )
