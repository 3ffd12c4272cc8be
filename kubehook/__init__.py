"""
The main kubehook module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the framework's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kubehook._cogs.configs.configuration import (
    OperatorSettings,
    ServerSettings,
    AdmissionSettings,
    RegistrationSettings,
    NetworkingSettings,
    WatchingSettings,
    QueueingSettings,
)
from kubehook._cogs.helpers.typedefs import (
    Logger,
)
from kubehook._cogs.helpers.versions import (
    version as __version__,
)
from kubehook._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
)
from kubehook._cogs.clients.logins import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)
from kubehook._cogs.structs.bodies import (
    RawBody,
)
from kubehook._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from kubehook._cogs.structs.fielderrors import (
    FieldError,
    missing_field,
    disallowed_fields,
    disallowed_update_deprecated_fields,
    invalid_value,
    invalid_key_name,
    missing_one_of,
    multiple_one_of,
    out_of_bounds,
    immutable_fields,
)
from kubehook._cogs.structs.gvks import (
    GroupKind,
    GroupVersionKind,
    GroupVersionResource,
)
from kubehook._cogs.structs.patches import (
    JSONPatch,
)
from kubehook._cogs.structs.reviews import (
    Operation,
    UserInfo,
    Headers,
    SSLPeer,
    WebhookFn,
)
from kubehook._core.actions.loggers import (
    configure,
    LogFormat,
    ObjectLogger,
)
from kubehook._core.engines.admission import (
    WebhookType,
    serve_admission_request,
    build_response,
)
from kubehook._core.engines.conversion import (
    convert,
)
from kubehook._core.engines.decoding import (
    RequestDecoder,
)
from kubehook._core.engines.errors import (
    AdmissionError,
    DecodeError,
    UnhandledKindError,
    FieldViolationError,
    ValidationError,
    DeprecatedFieldError,
    CallbackError,
    ConversionError,
    RegistrationError,
    WebhookError,
    UnsupportedMediaTypeError,
    MalformedRequestError,
    UnknownWebhookError,
)
from kubehook._core.engines.metrics import (
    MetricsSink,
    NullMetrics,
)
from kubehook._core.intents.callbacks import (
    TypedCallback,
    UnstructuredCallback,
    Callback,
)
from kubehook._core.intents.contexts import (
    RequestContext,
)
from kubehook._core.intents.registries import (
    HandlerRegistry,
    CallbackRegistry,
    GroupKindConversion,
    OperatorRegistry,
)
from kubehook._core.intents.resources import (
    Model,
    ObjectMeta,
    Resource,
    Defaultable,
    Validatable,
    Convertible,
    marshal,
    unmarshal,
)
from kubehook._core.reactor.leadership import (
    ObjectKey,
    Bucket,
    UniversalBucket,
    LeaderAware,
    Candidate,
    ElectionFn,
)
from kubehook._core.reactor.running import (
    spawn_tasks,
    run_tasks,
    operator,
    run,
)
from kubehook._kits.webhooks import (
    WebhookServer,
)

__all__ = [
    'OperatorSettings', 'ServerSettings', 'AdmissionSettings', 'RegistrationSettings',
    'NetworkingSettings', 'WatchingSettings', 'QueueingSettings',
    'Logger',
    'APIError', 'APIClientError', 'APIServerError',
    'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError', 'APIConflictError',
    'login',
    'login_with_kubeconfig',
    'login_with_service_account',
    'LoginError',
    'ConnectionInfo',
    'RawBody',
    'FieldError',
    'missing_field',
    'disallowed_fields',
    'disallowed_update_deprecated_fields',
    'invalid_value',
    'invalid_key_name',
    'missing_one_of',
    'multiple_one_of',
    'out_of_bounds',
    'immutable_fields',
    'GroupKind', 'GroupVersionKind', 'GroupVersionResource',
    'JSONPatch',
    'Operation',
    'UserInfo',
    'Headers',
    'SSLPeer',
    'WebhookFn',
    'configure',
    'LogFormat',
    'ObjectLogger',
    'WebhookType',
    'serve_admission_request',
    'build_response',
    'convert',
    'RequestDecoder',
    'AdmissionError',
    'DecodeError',
    'UnhandledKindError',
    'FieldViolationError',
    'ValidationError',
    'DeprecatedFieldError',
    'CallbackError',
    'ConversionError',
    'RegistrationError',
    'WebhookError',
    'UnsupportedMediaTypeError',
    'MalformedRequestError',
    'UnknownWebhookError',
    'MetricsSink', 'NullMetrics',
    'TypedCallback', 'UnstructuredCallback', 'Callback',
    'RequestContext',
    'HandlerRegistry', 'CallbackRegistry', 'GroupKindConversion', 'OperatorRegistry',
    'Model', 'ObjectMeta', 'Resource',
    'Defaultable', 'Validatable', 'Convertible',
    'marshal', 'unmarshal',
    'ObjectKey', 'Bucket', 'UniversalBucket', 'LeaderAware', 'Candidate', 'ElectionFn',
    'spawn_tasks', 'run_tasks', 'operator', 'run',
    'WebhookServer',
]
