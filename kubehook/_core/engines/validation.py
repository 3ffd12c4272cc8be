"""
The validating admission: the resources' own validation, then the callbacks.

Nothing is mutated here. For creations & updates, the new object is decoded
and validated by the resource itself (with the old object as the baseline
of the context on updates), then checked by the callback, if any.

For deletions & connections, there is nothing to validate, but the callbacks
interested in these operations are still invoked: e.g. to prevent the deletion
of the objects that are still in use. The deleted object is the old one.
"""
from collections.abc import Mapping
from typing import Any

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import reviews
from kubehook._core.actions import execution
from kubehook._core.engines import decoding, errors
from kubehook._core.intents import contexts, registries, resources


async def admit(
        payload: Mapping[str, Any],
        *,
        decoder: decoding.RequestDecoder,
        callbacks: registries.CallbackRegistry,
        client: Any = None,
        warnings: list[str],
        logger: typedefs.Logger,
) -> None:
    """
    Validate the object of the review; raise :class:`AdmissionError` to deny.
    """
    operation: reviews.Operation = payload.get('operation', 'CREATE')
    raw_new = payload.get('object')
    raw_old = payload.get('oldObject')
    gvk = decoding.get_gvk(payload)

    if operation in ('DELETE', 'CONNECT'):
        cls = decoder.resolve(gvk)
        context = contexts.build_context(payload, client=client, logger=logger)
        target = raw_old if operation == 'DELETE' or raw_new is None else raw_new
    else:
        decoded = decoder.decode_request(payload, client=client, logger=logger)
        cls, context, target = decoded.cls, decoded.context, raw_new
        if decoded.new is None:
            raise errors.DecodeError("cannot decode incoming new object: it is absent")
        validate_resource(decoded.new, context)

    callback = callbacks.get(gvk, operation)
    if callback is not None and target is None:
        logger.warning(f"No object to validate by the callback for {gvk} on {operation}.")
    elif callback is not None and target is not None:
        try:
            await execution.execute_callback(
                callback,
                gvk=gvk,
                cls=cls,
                body=dict(target),
                old=raw_old if target is not raw_old else None,
                context=context,
                warnings=warnings,
                logger=logger,
            )
        except errors.AdmissionError:
            raise
        except Exception as e:
            raise errors.CallbackError(f"validation callback failed: {e}") from e


def validate_resource(
        resource: resources.Resource,
        context: contexts.RequestContext,
) -> None:
    if not isinstance(resource, resources.Validatable):
        return

    try:
        error = resource.validate_resource(context)
    except errors.AdmissionError:
        raise
    except Exception as e:
        raise errors.CallbackError(f"validation failed: {e}") from e

    if error:
        raise errors.ValidationError(f"validation failed: {error}", error)
