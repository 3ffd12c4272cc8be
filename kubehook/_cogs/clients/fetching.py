from collections.abc import Collection

from kubehook._cogs.clients import api
from kubehook._cogs.configs import configuration
from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, references


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        field_selector: str | None = None,
        logger: typedefs.Logger,
) -> tuple[Collection[bodies.RawBody], str | None]:
    """
    List the objects of a specific resource type, optionally filtered by fields.

    The items of the lists come without ``apiVersion`` & ``kind`` from the API,
    so they are restored from the list's own ones, as if the objects were
    fetched individually.
    """
    params = {'fieldSelector': field_selector} if field_selector else None
    rsp = await api.get(
        url=resource.get_url(namespace=namespace, params=params),
        logger=logger,
        settings=settings,
    )

    items: list[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'].removesuffix('List'))
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
