import copy

import pytest

from kubehook._cogs.structs.gvks import GroupVersionKind
from kubehook._core.engines.errors import RegistrationError
from kubehook._core.intents.callbacks import UnstructuredCallback
from kubehook._core.intents.registries import CallbackRegistry, GroupKindConversion
from kubehook._core.reactor.leadership import ObjectKey, UniversalBucket
from kubehook._core.reactor.registration import ConversionReconciler, MutatingWebhookReconciler, \
                                                ValidatingWebhookReconciler, build_rules, \
                                                defaulting_operations, desired_namespace_selector, \
                                                ensure_label_selector_expressions, get_ca_bundle, \
                                                validation_operations

GVK1 = GroupVersionKind('example.com', 'v1', 'Foo')
GVK2 = GroupVersionKind('example.com', 'v1', 'Bar')
GVK3 = GroupVersionKind('another.org', 'v2', 'Baz')

EXCLUDED = {'key': 'webhooks.kubehook.dev/exclude', 'operator': 'DoesNotExist'}


def test_ca_bundle(secrets, settings, ca_bundle):
    assert get_ca_bundle(secrets, settings=settings) == ca_bundle


def test_ca_bundle_is_normalised(secrets, settings, ca_bundle):
    secret = secrets.get(ObjectKey('default', 'webhook-certs'))
    secret['data']['ca-cert.pem'] = ca_bundle[:20] + '\n' + ca_bundle[20:]
    assert get_ca_bundle(secrets, settings=settings) == ca_bundle


def test_ca_bundle_of_absent_secret(secrets, settings):
    settings.server.secret_name = 'other'
    with pytest.raises(RegistrationError) as err:
        get_ca_bundle(secrets, settings=settings)
    assert str(err.value) == "The serving secret default/other is not found."


def test_ca_bundle_of_incomplete_secret(secrets, settings):
    del secrets.get(ObjectKey('default', 'webhook-certs'))['data']['ca-cert.pem']
    with pytest.raises(RegistrationError, match=r"is missing the 'ca-cert.pem' key"):
        get_ca_bundle(secrets, settings=settings)


def test_ca_bundle_malformed(secrets, settings):
    secrets.get(ObjectKey('default', 'webhook-certs'))['data']['ca-cert.pem'] = 'a'
    with pytest.raises(RegistrationError, match=r"has a malformed 'ca-cert.pem' key"):
        get_ca_bundle(secrets, settings=settings)


def test_defaulting_rules():
    rules = build_rules([GVK1, GVK2, GVK3], operations=defaulting_operations)
    assert rules == [
        {'operations': ['CREATE', 'UPDATE'], 'apiGroups': ['another.org'], 'apiVersions': ['v2'],
         'resources': ['bazs', 'bazs/*'], 'scope': '*'},
        {'operations': ['CREATE', 'UPDATE'], 'apiGroups': ['example.com'], 'apiVersions': ['v1'],
         'resources': ['bars', 'bars/*'], 'scope': '*'},
        {'operations': ['CREATE', 'UPDATE'], 'apiGroups': ['example.com'], 'apiVersions': ['v1'],
         'resources': ['foos', 'foos/*'], 'scope': '*'},
    ]


def test_validation_rules_with_extra_operations():
    validation = CallbackRegistry({GVK1: UnstructuredCallback(lambda **_: None, operations={'DELETE'})})
    rules = build_rules([GVK1, GVK2], operations=validation_operations(validation))
    assert [rule['operations'] for rule in rules] == [
        ['CREATE', 'UPDATE'],
        ['CREATE', 'UPDATE', 'DELETE'],
    ]


def test_no_rules_for_no_kinds():
    assert build_rules([], operations=defaulting_operations) == []


def test_desired_namespace_selector(settings):
    assert desired_namespace_selector(settings) == {'matchExpressions': [EXCLUDED]}


def test_selector_of_nothing(settings):
    merged = ensure_label_selector_expressions(None, desired_namespace_selector(settings),
                                               managed_prefix='webhooks.kubehook.dev/')
    assert merged == {'matchExpressions': [EXCLUDED]}


def test_selector_keeps_the_foreign_expressions_and_labels(settings):
    foreign = {'key': 'team', 'operator': 'In', 'values': ['a']}
    outdated = {'key': 'webhooks.kubehook.dev/old', 'operator': 'Exists'}
    current = {'matchLabels': {'env': 'prod'}, 'matchExpressions': [foreign, outdated]}
    merged = ensure_label_selector_expressions(current, desired_namespace_selector(settings),
                                               managed_prefix='webhooks.kubehook.dev/')
    assert merged == {'matchLabels': {'env': 'prod'}, 'matchExpressions': [EXCLUDED, foreign]}
    assert current['matchExpressions'] == [foreign, outdated]


def test_selector_without_desired_expressions():
    merged = ensure_label_selector_expressions({'matchLabels': {}}, {},
                                               managed_prefix='webhooks.kubehook.dev/')
    assert merged == {'matchLabels': {}}


def make_configuration(name, *webhooks):
    return {'metadata': {'name': name}, 'webhooks': list(webhooks)}


def make_webhook(name, **extra):
    return dict({'name': name, 'clientConfig': {'service': {'namespace': 'default', 'name': 'svc'}}}, **extra)


@pytest.fixture()
def rules():
    return build_rules([GVK1], operations=defaulting_operations)


@pytest.fixture()
def mutating(settings, secrets, objects, queue, rules):
    return MutatingWebhookReconciler(name='kubehook-defaulting', path='/defaulting', rules=rules,
                                     settings=settings, secrets=secrets, objects=objects, queue=queue)


@pytest.fixture()
def validating(settings, secrets, objects, queue, rules):
    return ValidatingWebhookReconciler(name='kubehook-validation', path='/validation', rules=rules,
                                       settings=settings, secrets=secrets, objects=objects, queue=queue)


async def test_mutating_configuration_is_updated(mutating, objects, ca_bundle, rules, replace_obj):
    key = ObjectKey(None, 'kubehook-defaulting')
    foreign = make_webhook('other-webhook')
    objects._store[key] = make_configuration('kubehook-defaulting',
                                             make_webhook('kubehook-defaulting'),
                                             copy.deepcopy(foreign))
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    await mutating.process(key)

    assert replace_obj.await_count == 1
    kwargs = replace_obj.call_args.kwargs
    assert kwargs['name'] == 'kubehook-defaulting'
    assert kwargs['namespace'] is None
    assert kwargs['resource'] is MutatingWebhookReconciler.resource
    webhooks = kwargs['body']['webhooks']
    assert webhooks[0] == {
        'name': 'kubehook-defaulting',
        'clientConfig': {
            'caBundle': ca_bundle,
            'service': {'namespace': 'default', 'name': 'svc', 'path': '/defaulting'},
        },
        'rules': rules,
        'namespaceSelector': {'matchExpressions': [EXCLUDED]},
        'reinvocationPolicy': 'IfNeeded',
    }
    assert webhooks[1] == foreign


async def test_validating_configuration_has_no_reinvocation(validating, objects, replace_obj):
    key = ObjectKey(None, 'kubehook-validation')
    objects._store[key] = make_configuration('kubehook-validation', make_webhook('kubehook-validation'))
    validating.promote(UniversalBucket(), lambda bucket, key: None)
    await validating.process(key)

    webhook = replace_obj.call_args.kwargs['body']['webhooks'][0]
    assert webhook['clientConfig']['service']['path'] == '/validation'
    assert 'reinvocationPolicy' not in webhook


async def test_cached_objects_are_not_modified(mutating, objects, replace_obj):
    key = ObjectKey(None, 'kubehook-defaulting')
    objects._store[key] = make_configuration('kubehook-defaulting', make_webhook('kubehook-defaulting'))
    cached = copy.deepcopy(objects.get(key))
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    await mutating.process(key)
    assert objects.get(key) == cached


async def test_up_to_date_configuration_is_not_updated(mutating, objects, replace_obj, assert_logs):
    key = ObjectKey(None, 'kubehook-defaulting')
    objects._store[key] = make_configuration('kubehook-defaulting', make_webhook('kubehook-defaulting'))
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    await mutating.process(key)
    objects._store[key] = replace_obj.call_args.kwargs['body']
    replace_obj.reset_mock()

    await mutating.process(key)
    assert not replace_obj.called
    assert_logs([r"The mutating webhook configuration is up to date."])


async def test_not_leading_keys_are_skipped(mutating, objects, replace_obj, assert_logs):
    key = ObjectKey(None, 'kubehook-defaulting')
    objects._store[key] = make_configuration('kubehook-defaulting', make_webhook('kubehook-defaulting'))
    await mutating.process(key)
    assert not replace_obj.called
    assert_logs([r"Skipping the mutating webhook configuration kubehook-defaulting: not a leader"])


async def test_absent_configuration(mutating, replace_obj):
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    with pytest.raises(RegistrationError) as err:
        await mutating.process(ObjectKey(None, 'kubehook-defaulting'))
    assert str(err.value) == "The mutating webhook configuration 'kubehook-defaulting' is not found."
    assert not replace_obj.called


async def test_webhook_without_service(mutating, objects, replace_obj):
    key = ObjectKey(None, 'kubehook-defaulting')
    objects._store[key] = make_configuration('kubehook-defaulting', {'name': 'kubehook-defaulting'})
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    with pytest.raises(RegistrationError, match=r"has no service reference"):
        await mutating.process(key)
    assert not replace_obj.called


async def test_absent_secret(mutating, secrets, objects, replace_obj):
    secrets._store.clear()
    key = ObjectKey(None, 'kubehook-defaulting')
    objects._store[key] = make_configuration('kubehook-defaulting', make_webhook('kubehook-defaulting'))
    mutating.promote(UniversalBucket(), lambda bucket, key: None)
    with pytest.raises(RegistrationError, match=r"serving secret default/webhook-certs is not found"):
        await mutating.process(key)


async def test_promotion_enqueues_the_configuration(mutating, queue):
    mutating.promote(UniversalBucket(), lambda bucket, key: queue.add(key))
    assert await queue.get() == ObjectKey(None, 'kubehook-defaulting')


async def test_object_changes_enqueue_own_keys_only(mutating, objects, queue):
    objects.notify(ObjectKey(None, 'something-else'))
    objects.notify(ObjectKey('ns1', 'kubehook-defaulting'))
    assert len(queue) == 0
    objects.notify(ObjectKey(None, 'kubehook-defaulting'))
    assert len(queue) == 1


async def test_secret_changes_enqueue_all_keys(mutating, secrets, queue):
    secrets.notify(ObjectKey('default', 'another-secret'))
    assert len(queue) == 0
    secrets.notify(ObjectKey('default', 'webhook-certs'))
    assert await queue.get() == ObjectKey(None, 'kubehook-defaulting')


def make_crd(name, strategy='Webhook', service=True):
    client_config = {'service': {'namespace': 'default', 'name': 'svc'}} if service else {}
    return {
        'metadata': {'name': name},
        'spec': {'conversion': {'strategy': strategy, 'webhook': {
            'clientConfig': client_config,
            'conversionReviewVersions': ['v1'],
        }}},
    }


@pytest.fixture()
def conversion(settings, secrets, crds, queue):
    conversions = [GroupKindConversion(definition_name='foos.example.com', hub_version='v1', zygotes={})]
    return ConversionReconciler(path='/resource-conversion', conversions=conversions,
                                settings=settings, secrets=secrets, objects=crds, queue=queue)


def test_conversion_keys(conversion):
    assert list(conversion.known_keys()) == [ObjectKey(None, 'foos.example.com')]


async def test_crd_is_updated(conversion, crds, ca_bundle, replace_obj):
    key = ObjectKey(None, 'foos.example.com')
    crds._store[key] = make_crd('foos.example.com')
    conversion.promote(UniversalBucket(), lambda bucket, key: None)
    await conversion.process(key)

    kwargs = replace_obj.call_args.kwargs
    assert kwargs['resource'] is ConversionReconciler.resource
    assert kwargs['body']['spec']['conversion']['webhook'] == {
        'clientConfig': {
            'caBundle': ca_bundle,
            'service': {'namespace': 'default', 'name': 'svc', 'path': '/resource-conversion'},
        },
        'conversionReviewVersions': ['v1'],
    }


@pytest.mark.parametrize('crd', [
    make_crd('foos.example.com', strategy='None'),
    make_crd('foos.example.com', service=False),
    {'metadata': {'name': 'foos.example.com'}, 'spec': {}},
])
async def test_crd_without_conversion_webhook(conversion, crds, crd, replace_obj):
    key = ObjectKey(None, 'foos.example.com')
    crds._store[key] = crd
    conversion.promote(UniversalBucket(), lambda bucket, key: None)
    with pytest.raises(RegistrationError) as err:
        await conversion.process(key)
    assert str(err.value) == "The custom resource 'foos.example.com' is not configured for the webhook conversion."
    assert not replace_obj.called
