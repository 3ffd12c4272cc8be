"""
All configuration flags, options, settings to fine-tune the webhooks.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are usually created by the CLI and overridden by the options
and the ``KUBEHOOK_*`` environment variables, but they can also be created
and passed explicitly when the operator is embedded into other applications.
"""
import dataclasses
from collections.abc import Iterable


@dataclasses.dataclass
class ServerSettings:
    """
    Settings of the HTTPS endpoint that serves the admission reviews.
    """

    addr: str | None = None
    """
    An address to listen on. ``None`` means all interfaces.
    """

    port: int = 8443
    """
    A port to listen on.
    """

    namespace: str = 'default'
    """
    The namespace of the serving secret (usually the operator's own namespace).
    """

    secret_name: str = 'webhook-certs'
    """
    The name of the secret with the serving certificate, its key, and the CA.

    The secret is expected to have the ``server-key.pem``, ``server-cert.pem``,
    and ``ca-cert.pem`` keys. The certificates are not generated or rotated
    by the framework: they are only consumed as they are found in the secret.
    """

    insecure: bool = False
    """
    Serve via plain HTTP instead of HTTPS. For local debugging only:
    Kubernetes never sends admission reviews to HTTP endpoints.
    """

    defaulting_path: str = '/defaulting'
    validation_path: str = '/validation'
    conversion_path: str = '/resource-conversion'
    """
    URL paths of the webhooks, one per webhook type.
    The same paths are injected into the configurations of the webhooks.
    """

    shutdown_timeout: float = 45.0
    """
    For how long to drain the in-flight admission requests on shutdown.

    The listening socket is closed immediately, so that no new requests
    are accepted, but the already accepted ones are allowed to finish.
    """


@dataclasses.dataclass
class AdmissionSettings:
    """
    Settings of the admission pipelines: defaulting and validation.
    """

    disallow_unknown_fields: bool = False
    """
    Reject the objects with the fields not declared in the resource models.

    By default, the unknown fields are silently dropped when the objects are
    decoded. Mind that in the defaulting webhooks, the dropped fields are
    also removed from the objects via the resulting patches.
    """

    strict_deprecation: bool = False
    """
    Deny setting or updating the deprecated fields of the resources.

    The deprecated fields are recognised by their ``deprecated_`` name prefix.
    Clearing a deprecated field is always allowed.
    """


@dataclasses.dataclass
class RegistrationSettings:
    """
    Settings of the reconcilers of the webhook configurations.
    """

    mutating_configuration: str | None = None
    """
    The name of a ``MutatingWebhookConfiguration`` to keep in sync.
    ``None`` disables the reconciliation of the mutating webhooks.
    """

    validating_configuration: str | None = None
    """
    The name of a ``ValidatingWebhookConfiguration`` to keep in sync.
    ``None`` disables the reconciliation of the validating webhooks.
    """

    managed_prefix: str = 'webhooks.kubehook.dev/'
    """
    The reserved prefix of the namespace selectors' keys that the reconcilers
    consider their own. Expressions with other keys are never touched.
    """

    excluded_label: str = 'webhooks.kubehook.dev/exclude'
    """
    A label to put on namespaces to exclude them from the webhooks.
    It is injected into the webhooks' namespace selectors.
    """

    resync_interval: float | None = 10 * 60
    """
    How often to re-reconcile all the configurations regardless of the events.
    ``None`` disables the periodic resyncing.
    """

    standalone: bool = True
    """
    Whether to promote the reconcilers to the leaders of all keys on startup.

    If ``False``, the reconcilers do nothing until promoted by the election
    function given to :func:`kubehook.run` (or via ``--election`` in the CLI).
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the API requests: from the sending of the request till
    the full reading of the response.
    """

    connect_timeout: float | None = None
    """
    A timeout for the TCP/SSL connection to the API server.
    """

    error_backoffs: float | Iterable[float] = (1, 1, 2, 3, 5, 8)
    """
    Backoffs for the API errors: connection errors & HTTP 5xx errors.
    The amount of backoffs is the number of retries (plus the initial attempt).
    A single number means a single retry with that backoff.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: float | None = None
    """
    The maximum duration of one streaming request. Patched in some tests.
    If ``None``, then obeys the server-side timeouts (they seem to be ~5-10 mins).
    """

    client_timeout: float | None = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """

    connect_timeout: float | None = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between watch requests (to prevent API flooding).
    """


@dataclasses.dataclass
class QueueingSettings:

    worker_limit: int = 2
    """
    How many keys can be reconciled at the same time, per reconciler.
    The same key is never reconciled by two workers at the same time.
    """

    base_delay: float = 0.005
    """
    The initial delay before retrying a failed key. It is doubled on every
    consequent failure of the same key, until the key succeeds.
    """

    max_delay: float = 1000.0
    """
    The maximum delay before retrying a failed key.
    """

    exit_timeout: float = 2.0
    """
    How long to wait for the keys in processing to finish on exit.
    """


@dataclasses.dataclass
class OperatorSettings:
    server: ServerSettings = dataclasses.field(default_factory=ServerSettings)
    admission: AdmissionSettings = dataclasses.field(default_factory=AdmissionSettings)
    registration: RegistrationSettings = dataclasses.field(default_factory=RegistrationSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)
