"""
The defaulting (mutating) admission: defaults, bookkeeping, mutations.

The object of the review is decoded into its resource class, defaulted by
the resource itself, stamped with the creator/modifier annotations, mutated
by the callback (if any), and marshalled back. The difference between
the original object and the final one is returned as a JSON patch.

Since the unknown fields are dropped on decoding, the patch also removes
them from the object. The fields that are equal to the original ones
produce no patch operations, so the repeated defaulting yields no patch.
"""
from collections.abc import Mapping
from typing import Any

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, patches, reviews
from kubehook._core.actions import execution
from kubehook._core.engines import decoding, deprecation, errors
from kubehook._core.intents import contexts, registries, resources


CREATOR_ANNOTATION_SUFFIX = '/creator'
UPDATER_ANNOTATION_SUFFIX = '/lastModifier'


async def admit(
        payload: Mapping[str, Any],
        *,
        decoder: decoding.RequestDecoder,
        callbacks: registries.CallbackRegistry,
        strict_deprecation: bool = False,
        client: Any = None,
        warnings: list[str],
        logger: typedefs.Logger,
) -> patches.JSONPatch:
    """
    Default & mutate the object of the review; return the patch to apply.

    Raises :class:`AdmissionError` (or its descendants) to deny the request.
    """
    operation: reviews.Operation = payload.get('operation', 'CREATE')
    if operation in ('DELETE', 'CONNECT'):
        return []

    gvk = decoding.get_gvk(payload)
    cls = decoder.resolve(gvk)
    raw_new = payload.get('object')
    raw_old = payload.get('oldObject') if operation == 'UPDATE' else None
    if raw_new is None:
        raise errors.DecodeError("cannot decode incoming new object: it is absent")
    new = decoder.decode(cls, raw_new, side='new')
    old = decoder.decode(cls, raw_old, side='old') if raw_old is not None else None
    context = contexts.build_context(payload, baseline=old, client=client, logger=logger)

    if strict_deprecation:
        deprecation.check_deprecated(new, old)

    if isinstance(new, resources.Defaultable):
        try:
            new.set_defaults(context)
        except errors.AdmissionError:
            raise
        except Exception as e:
            raise errors.CallbackError(f"defaulting failed: {e}") from e

    group = (payload.get('resource') or {}).get('group', '')
    set_userinfo_annotations(new, context, group=group)
    final = resources.marshal(new)

    callback = callbacks.get(gvk, operation)
    if callback is not None:
        before = final
        try:
            final = await execution.execute_callback(
                callback,
                gvk=gvk,
                cls=cls,
                body=final,
                old=raw_old,
                context=context,
                warnings=warnings,
                logger=logger,
            )
        except errors.AdmissionError:
            raise
        except Exception as e:
            raise errors.CallbackError(f"mutation failed: {e}") from e
        set_userinfo_annotations_unstructured(final, before, context, group=group)

    patch = patches.diff(raw_new, final)
    if patch:
        logger.debug(f"Defaulted with the patch: {patch!r}")
    return patch


def set_userinfo_annotations(
        resource: resources.Resource,
        context: contexts.RequestContext,
        *,
        group: str,
) -> None:
    """
    Remember who has created the object, and who has changed its spec lastly.

    The updates of anything but the spec (e.g. labels or status) are not
    considered as modifications: the last modifier remains the same.
    """
    username = context.username
    if username is None:
        return

    if context.is_update:
        baseline = context.baseline
        if isinstance(baseline, resources.Resource) and baseline.untyped_spec == resource.untyped_spec:
            return
        resource.annotations[group + UPDATER_ANNOTATION_SUFFIX] = username
    else:
        resource.annotations[group + CREATOR_ANNOTATION_SUFFIX] = username
        resource.annotations[group + UPDATER_ANNOTATION_SUFFIX] = username


def set_userinfo_annotations_unstructured(
        after: bodies.RawBody,
        before: Mapping[str, Any],
        context: contexts.RequestContext,
        *,
        group: str,
) -> None:
    """
    Re-stamp the annotations if the callback has changed the object.

    Only the existing annotations are re-stamped: if the callback has removed
    them all, it is considered intentional.
    """
    username = context.username
    annotations = after.get('metadata', {}).get('annotations')
    if username is None or not isinstance(annotations, dict):
        return

    if context.is_update:
        if before == after:
            return
        annotations[group + UPDATER_ANNOTATION_SUFFIX] = username
    else:
        annotations[group + CREATOR_ANNOTATION_SUFFIX] = username
        annotations[group + UPDATER_ANNOTATION_SUFFIX] = username
