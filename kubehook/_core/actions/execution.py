"""
Execution of the admission callbacks: typed or unstructured.

The callbacks are invoked with the kwargs only. Depending on the variant,
the reviewed object is passed either as ``body`` (a JSON-like dict, mutable
in place) or as ``resource`` (the decoded resource, also mutable in place).
The old object, if any, is passed as ``old`` in the same representation.

Whatever the callbacks return is ignored: the mutations are done in place,
the denials are done by raising errors.
"""
import copy
from collections.abc import Mapping
from typing import Any

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, gvks
from kubehook._core.actions import invocation
from kubehook._core.intents import callbacks, contexts, resources


async def execute_callback(
        callback: callbacks.Callback,
        *,
        gvk: gvks.GroupVersionKind,
        cls: type[resources.Resource],
        body: bodies.RawBody,
        old: Mapping[str, Any] | None,
        context: contexts.RequestContext,
        warnings: list[str],
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Invoke the callback with the object, and return the object as modified.

    The object (and the old object) are given as marshalled dicts, and are
    decoded into the resources for the typed callbacks. The result is always
    a marshalled dict, regardless of the callback's variant.
    """
    kwargs: dict[str, Any] = dict(
        gvk=gvk,
        context=context,
        operation=context.operation,
        subresource=context.subresource,
        userinfo=context.userinfo,
        dryrun=context.dryrun,
        warnings=warnings,
        logger=logger,
    )
    match callback:
        case callbacks.UnstructuredCallback():
            body = copy.deepcopy(body)
            old = copy.deepcopy(old) if old is not None else None
            await invocation.invoke(callback.fn, kwargs=dict(kwargs, body=body, old=old))
            return body
        case callbacks.TypedCallback():
            resource = resources.unmarshal(cls, body)
            baseline = resources.unmarshal(cls, old) if old is not None else None
            await invocation.invoke(callback.fn, kwargs=dict(kwargs, resource=resource, old=baseline))
            return resources.marshal(resource)
        case _:
            raise TypeError(f"Unsupported callback: {callback!r}")
