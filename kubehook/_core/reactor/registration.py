"""
Reconciliation of the webhook configurations with the operator's registry.

The webhook configurations (``MutatingWebhookConfiguration``,
``ValidatingWebhookConfiguration``) and the CRDs' conversion webhooks are
expected to be pre-created by the deployment (e.g. by Helm), with the service
references pointing to the operator's pods. The reconcilers never create or
delete them, but only keep the parts derived from the operator up to date:

* the CA bundle, as taken from the serving secret;
* the path of the webhook, as served by the operator;
* the rules, as derived from the registered resources & callbacks;
* the namespace selector's expressions owned by the framework.

Only the webhook entries named exactly as their configuration are managed.
All other entries, and all foreign expressions of the namespace selectors,
are preserved intact.

The writes are done with the full replacement of the objects as they were
cached by the informers, so the concurrent modifications are detected by
Kubernetes (HTTP 409) and retried by the work queue with a backoff.
"""
import base64
import binascii
import copy
import logging
from collections.abc import Callable, Collection, Iterable, Iterator
from typing import ClassVar

from kubehook._cogs.clients import updating
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import bodies, gvks, references, reviews
from kubehook._core.actions import loggers
from kubehook._core.engines import errors
from kubehook._core.intents import callbacks, registries
from kubehook._core.reactor import informers, leadership, queueing

logger = logging.getLogger(__name__)

SERVER_KEY_KEY = 'server-key.pem'
SERVER_CERT_KEY = 'server-cert.pem'
CA_CERT_KEY = 'ca-cert.pem'

# The canonical order of the operations in the rules, as in K8s docs.
OPERATIONS: tuple[reviews.Operation, ...] = ('CREATE', 'UPDATE', 'DELETE', 'CONNECT')

OperationsFn = Callable[[gvks.GroupVersionKind], Collection[reviews.Operation]]


def get_ca_bundle(
        secrets: informers.Informer,
        *,
        settings: configuration.OperatorSettings,
) -> str:
    """
    Get the CA bundle from the serving secret as expected in the client configs.

    Both the secrets' data and the CA bundles are base64-encoded on the wire.
    The data is decoded and re-encoded to normalise the padding & line breaks.
    """
    namespace, name = settings.server.namespace, settings.server.secret_name
    secret = secrets.get(leadership.ObjectKey(namespace, name))
    if secret is None:
        raise errors.RegistrationError(f"The serving secret {namespace}/{name} is not found.")

    data = secret.get('data') or {}
    if CA_CERT_KEY not in data:
        raise errors.RegistrationError(f"The serving secret {namespace}/{name} "
                                       f"is missing the {CA_CERT_KEY!r} key.")
    try:
        ca_cert = base64.b64decode(data[CA_CERT_KEY])
    except (binascii.Error, TypeError) as e:
        raise errors.RegistrationError(f"The serving secret {namespace}/{name} "
                                       f"has a malformed {CA_CERT_KEY!r} key: {e}") from e
    return base64.b64encode(ca_cert).decode('ascii')


def build_rules(
        kinds: Iterable[gvks.GroupVersionKind],
        *,
        operations: OperationsFn,
) -> list[reviews.RuleWithOperations]:
    """
    Build the webhook's rules for the kinds, one rule per kind, sorted.

    The subresources of the kinds (e.g. ``status``) are included too.
    """
    rules: list[reviews.RuleWithOperations] = []
    for gvk in sorted(kinds, key=lambda gvk: (gvk.group, gvk.version, gvk.plural)):
        ops = set(operations(gvk))
        rules.append(reviews.RuleWithOperations(
            operations=[op for op in OPERATIONS if op in ops],
            apiGroups=[gvk.group],
            apiVersions=[gvk.version],
            resources=[gvk.plural, f'{gvk.plural}/*'],
            scope='*',
        ))
    return rules


def defaulting_operations(gvk: gvks.GroupVersionKind) -> Collection[reviews.Operation]:
    return callbacks.DEFAULT_OPERATIONS


def validation_operations(validation: registries.CallbackRegistry) -> OperationsFn:
    """
    The validation rules include the deletions & connections only on request.

    The resources' own validation works only for the creations & updates.
    The deletions & connections are sent to the webhook only if the kind's
    callback is interested in them; otherwise, they would be allowed anyway.
    """
    def fn(gvk: gvks.GroupVersionKind) -> Collection[reviews.Operation]:
        return callbacks.DEFAULT_OPERATIONS | validation.operations_for(gvk)
    return fn


def desired_namespace_selector(
        settings: configuration.OperatorSettings,
) -> reviews.LabelSelector:
    return reviews.LabelSelector(matchExpressions=[
        reviews.MatchExpression(key=settings.registration.excluded_label, operator='DoesNotExist'),
    ])


def ensure_label_selector_expressions(
        current: reviews.LabelSelector | None,
        desired: reviews.LabelSelector,
        *,
        managed_prefix: str,
) -> reviews.LabelSelector:
    """
    Merge the framework's selector expressions into the existing selector.

    The labels are kept as they are. The expressions with the framework's
    keys (by their prefix) are replaced with the desired ones, which go first.
    All other expressions are preserved in their original order.
    """
    result = reviews.LabelSelector()
    if current and current.get('matchLabels') is not None:
        result['matchLabels'] = copy.deepcopy(current['matchLabels'])

    managed = copy.deepcopy(list(desired.get('matchExpressions') or []))
    foreign = [
        copy.deepcopy(expression)
        for expression in (current or {}).get('matchExpressions') or []
        if not str(expression.get('key', '')).startswith(managed_prefix)
    ]
    if managed or foreign:
        result['matchExpressions'] = managed + foreign
    return result


class Reconciler(leadership.LeaderAware):
    """
    A base reconciler of the cluster-wide objects known by their names.

    The reconciler is fed by two informers: the serving secret's informer
    (every change of the secret re-enqueues all the keys), and the informer
    of the reconciled objects (only the changes of the known keys count).
    """
    resource: ClassVar[references.Resource]
    title: ClassVar[str]

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            secrets: informers.Informer,
            objects: informers.Informer,
            queue: queueing.WorkQueue[leadership.ObjectKey],
    ) -> None:
        super().__init__()
        self.settings = settings
        self.secrets = secrets
        self.objects = objects
        self.queue = queue
        secrets.add_handler(self._secret_changed)
        objects.add_handler(self._object_changed)

    def known_keys(self) -> Iterator[leadership.ObjectKey]:
        for name in self.names():
            yield leadership.ObjectKey(None, name)

    def names(self) -> Collection[str]:
        raise NotImplementedError

    async def process(self, key: leadership.ObjectKey) -> None:
        """ The work queue's processor: reconcile the key if leading for it. """
        if not self.is_leader_for(key):
            logger.debug(f"Skipping the {self.title} {key}: not a leader for it.")
            return
        await self.reconcile(key)

    async def reconcile(self, key: leadership.ObjectKey) -> None:
        ca_bundle = get_ca_bundle(self.secrets, settings=self.settings)
        current = self.objects.get(key)
        if current is None:
            raise errors.RegistrationError(f"The {self.title} {key.name!r} is not found.")

        objlogger = loggers.ObjectLogger(body=current)
        desired = copy.deepcopy(current)
        self.patch(desired, key=key, ca_bundle=ca_bundle)
        if desired == current:
            objlogger.debug(f"The {self.title} is up to date.")
            return

        objlogger.info(f"Updating the {self.title}.")
        await updating.replace_obj(
            settings=self.settings,
            resource=self.resource,
            namespace=None,
            name=key.name,
            body=desired,
            logger=objlogger,
        )

    def patch(self, body: bodies.RawBody, *, key: leadership.ObjectKey, ca_bundle: str) -> None:
        """ Bring the object (a copy of the cached one) to the desired state. """
        raise NotImplementedError

    def _secret_changed(self, key: leadership.ObjectKey) -> None:
        if key == (self.settings.server.namespace, self.settings.server.secret_name):
            for own_key in self.known_keys():
                self.queue.add(own_key)

    def _object_changed(self, key: leadership.ObjectKey) -> None:
        if key.namespace is None and key.name in self.names():
            self.queue.add(key)


class WebhookConfigurationReconciler(Reconciler):
    """
    A reconciler of one admission webhook configuration (of any type).
    """
    reinvocation_policy: ClassVar[str | None] = None

    def __init__(
            self,
            *,
            name: str,
            path: str,
            rules: list[reviews.RuleWithOperations],
            settings: configuration.OperatorSettings,
            secrets: informers.Informer,
            objects: informers.Informer,
            queue: queueing.WorkQueue[leadership.ObjectKey],
    ) -> None:
        super().__init__(settings=settings, secrets=secrets, objects=objects, queue=queue)
        self.name = name
        self.path = path
        self.rules = rules

    def names(self) -> Collection[str]:
        return {self.name}

    def patch(self, body: bodies.RawBody, *, key: leadership.ObjectKey, ca_bundle: str) -> None:
        desired_selector = desired_namespace_selector(self.settings)
        for webhook in body.get('webhooks') or []:
            if webhook.get('name') != self.name:
                continue

            client_config = webhook.setdefault('clientConfig', {})
            service = client_config.get('service')
            if service is None:
                raise errors.RegistrationError(f"The webhook {self.name!r} of the {self.title} "
                                               f"has no service reference.")

            client_config['caBundle'] = ca_bundle
            service['path'] = self.path
            webhook['rules'] = copy.deepcopy(self.rules)
            webhook['namespaceSelector'] = ensure_label_selector_expressions(
                webhook.get('namespaceSelector'), desired_selector,
                managed_prefix=self.settings.registration.managed_prefix,
            )
            if self.reinvocation_policy is not None:
                webhook['reinvocationPolicy'] = self.reinvocation_policy


class MutatingWebhookReconciler(WebhookConfigurationReconciler):
    resource = references.MUTATING_WEBHOOK
    title = 'mutating webhook configuration'
    reinvocation_policy = 'IfNeeded'


class ValidatingWebhookReconciler(WebhookConfigurationReconciler):
    resource = references.VALIDATING_WEBHOOK
    title = 'validating webhook configuration'


class ConversionReconciler(Reconciler):
    """
    A reconciler of the conversion webhooks of the CRDs (one key per CRD).
    """
    resource = references.CRDS
    title = 'custom resource definition'

    def __init__(
            self,
            *,
            path: str,
            conversions: Iterable[registries.GroupKindConversion],
            settings: configuration.OperatorSettings,
            secrets: informers.Informer,
            objects: informers.Informer,
            queue: queueing.WorkQueue[leadership.ObjectKey],
    ) -> None:
        super().__init__(settings=settings, secrets=secrets, objects=objects, queue=queue)
        self.path = path
        self.definition_names = frozenset(conversion.definition_name for conversion in conversions)

    def names(self) -> Collection[str]:
        return self.definition_names

    def patch(self, body: bodies.RawBody, *, key: leadership.ObjectKey, ca_bundle: str) -> None:
        conversion = (body.get('spec') or {}).get('conversion') or {}
        webhook = conversion.get('webhook') or {}
        client_config = webhook.get('clientConfig') or {}
        service = client_config.get('service')
        if conversion.get('strategy') != 'Webhook' or service is None:
            raise errors.RegistrationError(f"The custom resource {key.name!r} "
                                           f"is not configured for the webhook conversion.")

        client_config['caBundle'] = ca_bundle
        service['path'] = self.path
