import pytest

from kubehook._cogs.structs.gvks import GroupVersionKind
from kubehook._core.engines.decoding import RequestDecoder, get_gvk
from kubehook._core.engines.errors import DecodeError, UnhandledKindError


def test_gvk_of_request(payload):
    assert get_gvk(payload) == GroupVersionKind('example.com', 'v1', 'Foo')


def test_gvk_of_core_kinds():
    payload = {'kind': {'group': '', 'version': 'v1', 'kind': 'Pod'}}
    assert get_gvk(payload) == GroupVersionKind('', 'v1', 'Pod')


def test_creation_is_decoded(decoder, payload, resource_cls):
    payload['object']['spec'] = {'replicas': 3}
    decoded = decoder.decode_request(payload)
    assert isinstance(decoded.new, resource_cls)
    assert decoded.new.spec.replicas == 3
    assert decoded.new.metadata.name == 'name1'
    assert decoded.old is None
    assert decoded.cls is resource_cls
    assert decoded.context.is_create
    assert decoded.context.baseline is None
    assert decoded.context.username == 'alice'


def test_update_is_decoded_with_baseline(decoder, payload, obj):
    payload['operation'] = 'UPDATE'
    payload['oldObject'] = dict(obj, spec={'replicas': 1})
    payload['object']['spec'] = {'replicas': 2}
    decoded = decoder.decode_request(payload)
    assert decoded.new.spec.replicas == 2
    assert decoded.old.spec.replicas == 1
    assert decoded.context.is_update
    assert decoded.context.baseline is decoded.old


def test_deletion_is_decoded_from_old_object(decoder, payload, obj):
    payload['operation'] = 'DELETE'
    payload['object'] = None
    payload['oldObject'] = obj
    decoded = decoder.decode_request(payload)
    assert decoded.new is None
    assert decoded.old.metadata.name == 'name1'


def test_unhandled_kind(decoder, payload):
    payload['kind'] = {'group': 'other.com', 'version': 'v1', 'kind': 'Other'}
    with pytest.raises(UnhandledKindError) as err:
        decoder.decode_request(payload)
    assert str(err.value) == "unhandled kind: other.com/v1, Kind=Other"
    assert err.value.code == 400


def test_no_objects(decoder, payload):
    payload['object'] = None
    with pytest.raises(DecodeError, match=r"neither new nor old is sent"):
        decoder.decode_request(payload)


def test_non_object(decoder, payload):
    payload['object'] = ['not', 'an', 'object']
    with pytest.raises(DecodeError) as err:
        decoder.decode_request(payload)
    assert str(err.value) == "cannot decode incoming new object: not an object"


def test_mistyped_fields(decoder, payload):
    payload['object']['spec'] = {'replicas': 'many'}
    with pytest.raises(DecodeError) as err:
        decoder.decode_request(payload)
    assert str(err.value).startswith("cannot decode incoming new object: ")
    assert err.value.code == 400


def test_mistyped_old_fields(decoder, payload, obj):
    payload['operation'] = 'UPDATE'
    payload['oldObject'] = dict(obj, spec={'replicas': 'many'})
    with pytest.raises(DecodeError, match=r"^cannot decode incoming old object: "):
        decoder.decode_request(payload)


def test_unknown_fields_are_dropped_by_default(decoder, payload):
    payload['object']['spec'] = {'replicas': 1, 'unknown': 'x'}
    decoded = decoder.decode_request(payload)
    assert decoded.new.spec.replicas == 1


def test_unknown_fields_are_rejected_if_disallowed(resources, payload):
    decoder = RequestDecoder(registry=resources, disallow_unknown_fields=True)
    payload['object']['spec'] = {'replicas': 1, 'unknown': 'x', 'another': 'y'}
    with pytest.raises(DecodeError) as err:
        decoder.decode_request(payload)
    assert str(err.value) == 'cannot decode incoming new object: unknown field "spec.another"'
