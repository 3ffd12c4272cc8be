import copy

import pydantic
import pytest

from kubehook._cogs.structs.fielderrors import FieldError, immutable_fields, invalid_value
from kubehook._core.engines.decoding import RequestDecoder
from kubehook._core.intents.registries import CallbackRegistry, HandlerRegistry, OperatorRegistry
from kubehook._core.intents.resources import Model, Resource


class Item(Model):
    name: str | None = None


class FooSpec(Model):
    field_with_default: str | None = None
    replicas: int | None = None
    immutable: str | None = None
    deprecated_size: str | None = None
    items: list[Item] | None = None


class Foo(Resource):
    spec: FooSpec = pydantic.Field(default_factory=FooSpec)

    def set_defaults(self, context):
        if not self.spec.field_with_default:
            self.spec.field_with_default = "I'm a default."

    def validate_resource(self, context):
        errs = None
        if self.spec.replicas is not None and self.spec.replicas < 0:
            errs = FieldError.also_of(errs, invalid_value(self.spec.replicas, 'replicas').via_field('spec'))
        if context.is_update and context.baseline.spec.immutable != self.spec.immutable:
            errs = FieldError.also_of(errs, immutable_fields('spec.immutable'))
        return errs


@pytest.fixture()
def resource_cls():
    return Foo


@pytest.fixture()
def resources(gvk, resource_cls):
    return HandlerRegistry({gvk: resource_cls})


@pytest.fixture()
def decoder(resources):
    return RequestDecoder(registry=resources)


@pytest.fixture()
def callbacks():
    return CallbackRegistry()


@pytest.fixture()
def registry(resources):
    return OperatorRegistry(resources=resources)


@pytest.fixture()
def obj():
    return {
        'apiVersion': 'example.com/v1',
        'kind': 'Foo',
        'metadata': {'name': 'name1', 'namespace': 'ns1', 'uid': 'uid1'},
        'spec': {},
    }


@pytest.fixture()
def adm_request(gvk, obj):
    return {
        'apiVersion': 'admission.k8s.io/v1',
        'kind': 'AdmissionReview',
        'request': {
            'uid': 'review-uid',
            'kind': {'group': gvk.group, 'version': gvk.version, 'kind': gvk.kind},
            'resource': {'group': gvk.group, 'version': gvk.version, 'resource': gvk.plural},
            'requestKind': {'group': gvk.group, 'version': gvk.version, 'kind': gvk.kind},
            'name': 'name1',
            'namespace': 'ns1',
            'operation': 'CREATE',
            'userInfo': {'username': 'alice', 'uid': 'alice-uid', 'groups': ['group1']},
            'object': copy.deepcopy(obj),
            'oldObject': None,
            'dryRun': False,
        },
    }


@pytest.fixture()
def payload(adm_request):
    return adm_request['request']
