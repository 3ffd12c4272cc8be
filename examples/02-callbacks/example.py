import pydantic

import kubehook

GVK = kubehook.GroupVersionKind('kubehook.dev', 'v1', 'KubehookExample')


class ExampleSpec(kubehook.Model):
    owner: str | None = None
    protected: bool | None = None


class Example(kubehook.Resource):
    spec: ExampleSpec = pydantic.Field(default_factory=ExampleSpec)


def assign_owner(body, userinfo, logger, **_):
    if not body.get('spec', {}).get('owner') and userinfo:
        body.setdefault('spec', {})['owner'] = userinfo.get('username')
        logger.info(f"Assigned the owner: {userinfo.get('username')}")


async def protect_deletion(resource, operation, warnings, **_):
    if operation == 'DELETE' and resource.spec.protected:
        raise kubehook.AdmissionError("The object is protected from deletion.", code=403)
    if resource.spec.owner is None:
        warnings.append("The object has no owner.")


registry = kubehook.OperatorRegistry(
    resources=kubehook.HandlerRegistry({GVK: Example}),
    defaulting=kubehook.CallbackRegistry({
        GVK: kubehook.UnstructuredCallback(assign_owner),
    }),
    validation=kubehook.CallbackRegistry({
        GVK: kubehook.TypedCallback(protect_deletion, operations={'CREATE', 'UPDATE', 'DELETE'}),
    }),
)
