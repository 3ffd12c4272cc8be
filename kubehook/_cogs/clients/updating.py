from kubehook._cogs.clients import api
from kubehook._cogs.configs import configuration
from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, references


async def replace_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace the whole object with a new body (i.e. HTTP PUT).

    The body must carry the ``metadata.resourceVersion`` it was read with:
    if the object was modified since then, the server rejects the write
    with HTTP 409, which is raised as :class:`APIConflictError`.
    Unlike the merge-patches, this guarantees that no concurrent changes
    to the lists (e.g. to the webhooks' entries) are overwritten silently.
    """
    return await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=body,
        settings=settings,
        logger=logger,
    )
