"""
Typed models of the users' resources, and their admission capabilities.

The resources are declared as pydantic models with the Python-style names
of the fields; the JSON names are camelCased automatically (``field_name``
is ``fieldName`` on the wire)::

    class FooSpec(kubehook.Model):
        field_with_default: str | None = None

    class Foo(kubehook.Resource):
        spec: FooSpec = pydantic.Field(default_factory=FooSpec)

        def set_defaults(self, context: kubehook.RequestContext) -> None:
            if not self.spec.field_with_default:
                self.spec.field_with_default = "I'm a default."

The fields with the ``None`` values are omitted when the resources are
marshalled, the same as the absent fields are omitted in the API objects.
The unknown fields are dropped on decoding (or rejected, if so configured).

The capabilities are opt-in: a resource is defaultable if it has the
:meth:`set_defaults` method, validatable if it has :meth:`validate_resource`,
and convertible if it has both :meth:`convert_to` and :meth:`convert_from`.
"""
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

import pydantic
import pydantic.alias_generators

from kubehook._cogs.structs import fielderrors

if TYPE_CHECKING:
    from kubehook._core.intents import contexts

_ModelT = TypeVar('_ModelT', bound='Model')


class Model(pydantic.BaseModel):
    """
    A base for the resources and all their nested structures.
    """
    model_config = pydantic.ConfigDict(
        populate_by_name=True,
        alias_generator=pydantic.alias_generators.to_camel,
    )

    @pydantic.model_serializer(mode='wrap')
    def omit_nones(self, handler: pydantic.SerializerFunctionWrapHandler) -> Any:
        data = handler(self)
        if not isinstance(data, dict):
            return data

        # Only the declared fields are omitted; the nulls in the extra fields are kept as sent.
        declared: set[str] = set()
        for name, field in type(self).model_fields.items():
            declared |= {name, field.alias or name, field.serialization_alias or name}
        return {key: val for key, val in data.items() if val is not None or key not in declared}


class ObjectMeta(Model):
    """
    The metadata of the objects, as much as the admission needs of it.

    All other fields populated by the server (``creationTimestamp``,
    ``managedFields``, ``ownerReferences``, etc.) are kept verbatim.
    """
    model_config = pydantic.ConfigDict(extra='allow')

    name: str | None = None
    generate_name: str | None = None
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = None
    generation: int | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None


class Resource(Model):
    """
    A base for the users' resources: with the API identity and metadata.

    The spec & status are declared by the descendant classes, if needed.
    """
    api_version: str | None = None
    kind: str | None = None
    metadata: ObjectMeta = pydantic.Field(default_factory=ObjectMeta)

    @property
    def untyped_spec(self) -> Any:
        """ The spec as a plain JSON-like value, for comparison of the whole specs. """
        spec = getattr(self, 'spec', None)
        if isinstance(spec, pydantic.BaseModel):
            return marshal(spec)
        return spec

    @property
    def annotations(self) -> dict[str, str]:
        """ The annotations of the object, created on the first access if absent. """
        if self.metadata.annotations is None:
            self.metadata.annotations = {}
        return self.metadata.annotations


@runtime_checkable
class Defaultable(Protocol):
    def set_defaults(self, context: "contexts.RequestContext") -> None:
        ...


@runtime_checkable
class Validatable(Protocol):
    def validate_resource(self, context: "contexts.RequestContext") -> fielderrors.FieldError | None:
        ...


@runtime_checkable
class Convertible(Protocol):
    def convert_to(self, context: "contexts.RequestContext", hub: Any) -> None:
        """ Fill the hub version's object (``hub``) from this object. """

    def convert_from(self, context: "contexts.RequestContext", hub: Any) -> None:
        """ Fill this object from the hub version's object (``hub``). """


def marshal(obj: pydantic.BaseModel) -> dict[str, Any]:
    """ Turn a resource (or any nested model) into a JSON-like dict with the JSON names. """
    return obj.model_dump(mode='json', by_alias=True)


def unmarshal(cls: type[_ModelT], data: Mapping[str, Any]) -> _ModelT:
    """ Turn a JSON-like dict with the JSON names into a resource of the specific class. """
    return cls.model_validate(data)
