import pytest

from kubehook._core.engines.decoding import RequestDecoder
from kubehook._core.engines.errors import AdmissionError, CallbackError, DecodeError, \
                                          UnhandledKindError, ValidationError
from kubehook._core.engines.validation import admit
from kubehook._core.intents.callbacks import TypedCallback, UnstructuredCallback
from kubehook._core.intents.registries import CallbackRegistry, HandlerRegistry
from kubehook._core.intents.resources import Resource


class Broken(Resource):
    def validate_resource(self, context):
        raise ZeroDivisionError("division by zero")


async def test_valid_creation(decoder, callbacks, payload, logger):
    payload['object']['spec'] = {'replicas': 1}
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_invalid_creation(decoder, callbacks, payload, logger):
    payload['object']['spec'] = {'replicas': -1}
    with pytest.raises(ValidationError) as err:
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert str(err.value) == 'validation failed: invalid value "-1": spec.replicas'
    assert str(err.value.error) == 'invalid value "-1": spec.replicas'
    assert err.value.code == 403


async def test_update_is_validated_against_the_baseline(decoder, callbacks, payload, obj, logger):
    payload['operation'] = 'UPDATE'
    payload['oldObject'] = dict(obj, spec={'immutable': 'a'})
    payload['object']['spec'] = {'immutable': 'b', 'replicas': -5}
    with pytest.raises(ValidationError) as err:
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert str(err.value.error) == (
        'Immutable fields changed (-old +new): spec.immutable\n'
        'invalid value "-5": spec.replicas'
    )


async def test_unchanged_update_is_valid(decoder, callbacks, payload, obj, logger):
    payload['operation'] = 'UPDATE'
    payload['oldObject'] = dict(obj, spec={'immutable': 'a'})
    payload['object']['spec'] = {'immutable': 'a', 'replicas': 5}
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_non_validatable_resources_are_allowed(gvk, callbacks, payload, logger):
    decoder = RequestDecoder(registry=HandlerRegistry({gvk: Resource}))
    payload['object']['spec'] = {'replicas': -1}
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_failing_validation(gvk, callbacks, payload, logger):
    decoder = RequestDecoder(registry=HandlerRegistry({gvk: Broken}))
    with pytest.raises(CallbackError) as err:
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert str(err.value) == "validation failed: division by zero"


async def test_undecodable_objects(decoder, callbacks, payload, logger):
    payload['object']['spec'] = {'replicas': 'many'}
    with pytest.raises(DecodeError):
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_unhandled_kinds(decoder, callbacks, payload, logger):
    payload['kind'] = {'group': 'other.com', 'version': 'v1', 'kind': 'Other'}
    with pytest.raises(UnhandledKindError):
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_deletion_without_callbacks(decoder, callbacks, payload, obj, logger):
    payload['operation'] = 'DELETE'
    payload['object'] = None
    payload['oldObject'] = dict(obj, spec={'replicas': -1})
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)


async def test_deletion_with_callback(gvk, decoder, payload, obj, logger, mocker):
    fn = mocker.Mock(return_value=None)
    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn, operations={'DELETE'})})
    payload['operation'] = 'DELETE'
    payload['object'] = None
    payload['oldObject'] = obj
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert fn.call_count == 1
    assert fn.call_args.kwargs['body'] == obj
    assert fn.call_args.kwargs['old'] is None
    assert fn.call_args.kwargs['operation'] == 'DELETE'


async def test_deletion_denied_by_callback(gvk, decoder, payload, obj, logger):
    def fn(**_):
        raise AdmissionError("still in use", code=409)

    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn, operations={'DELETE'})})
    payload['operation'] = 'DELETE'
    payload['object'] = None
    payload['oldObject'] = obj
    with pytest.raises(AdmissionError) as err:
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert str(err.value) == "still in use"
    assert err.value.code == 409


async def test_connection_without_objects(gvk, decoder, payload, logger, mocker, assert_logs):
    fn = mocker.Mock(return_value=None)
    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn, operations={'CONNECT'})})
    payload['operation'] = 'CONNECT'
    payload['object'] = None
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert not fn.called
    assert_logs([r"No object to validate by the callback for example.com/v1, Kind=Foo on CONNECT"])


async def test_typed_callback_on_update(gvk, decoder, payload, obj, logger, resource_cls):
    seen = []

    def fn(resource, old, context, **_):
        seen.append((resource.spec.replicas, old.spec.replicas, context.baseline.spec.replicas))

    callbacks = CallbackRegistry({gvk: TypedCallback(fn)})
    payload['operation'] = 'UPDATE'
    payload['oldObject'] = dict(obj, spec={'replicas': 1})
    payload['object']['spec'] = {'replicas': 2}
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert seen == [(2, 1, 1)]


async def test_callback_is_not_called_if_resource_is_invalid(gvk, decoder, payload, logger, mocker):
    fn = mocker.Mock(return_value=None)
    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn)})
    payload['object']['spec'] = {'replicas': -1}
    with pytest.raises(ValidationError):
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert not fn.called


async def test_callback_failure(gvk, decoder, payload, logger):
    async def fn(**_):
        raise RuntimeError("boom")

    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn)})
    with pytest.raises(CallbackError) as err:
        await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert str(err.value) == "validation callback failed: boom"
    assert err.value.code == 500


async def test_callback_cannot_mutate_the_request(gvk, decoder, payload, logger):
    def fn(body, **_):
        body['spec']['replicas'] = 100

    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn)})
    payload['object']['spec'] = {'replicas': 1}
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=[], logger=logger)
    assert payload['object']['spec'] == {'replicas': 1}


async def test_callback_warnings(gvk, decoder, payload, logger):
    def fn(warnings, **_):
        warnings.append("deprecated API")

    warnings = []
    callbacks = CallbackRegistry({gvk: UnstructuredCallback(fn)})
    await admit(payload, decoder=decoder, callbacks=callbacks, warnings=warnings, logger=logger)
    assert warnings == ["deprecated API"]

