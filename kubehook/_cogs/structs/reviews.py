"""
Admission & conversion reviews: requests & responses, also the webhook protocols.

The wire formats are exactly as Kubernetes sends and expects them.
The structures are only for type hinting: at runtime, they are plain dicts.
"""
from collections.abc import Awaitable, Mapping
from typing import Any, Literal, Protocol

from typing_extensions import NotRequired, TypedDict

from kubehook._cogs.structs import bodies

Headers = Mapping[str, str]
SSLPeer = Mapping[str, Any]

Operation = Literal['CREATE', 'UPDATE', 'DELETE', 'CONNECT']


class RequestKind(TypedDict):
    group: str
    version: str
    kind: str


class RequestResource(TypedDict):
    group: str
    version: str
    resource: str


class UserInfo(TypedDict, total=False):
    username: str
    uid: str
    groups: list[str]
    extra: dict[str, list[str]]


class RequestPayload(TypedDict, total=False):
    uid: str
    kind: RequestKind
    resource: RequestResource
    subResource: str | None
    requestKind: RequestKind
    requestResource: RequestResource
    requestSubResource: str | None
    userInfo: UserInfo
    name: str
    namespace: str | None
    operation: Operation
    options: Mapping[str, Any] | None
    dryRun: bool
    object: bodies.RawBody | None
    oldObject: bodies.RawBody | None


class Request(TypedDict):
    apiVersion: Literal["admission.k8s.io/v1", "admission.k8s.io/v1beta1"]
    kind: Literal["AdmissionReview"]
    request: RequestPayload


class ResponseStatus(TypedDict, total=False):
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str


class ResponsePayload(TypedDict):
    uid: str
    allowed: bool
    warnings: NotRequired[list[str]]
    status: NotRequired[ResponseStatus]
    patch: NotRequired[str]
    patchType: NotRequired[Literal["JSONPatch"]]


class Response(TypedDict):
    apiVersion: Literal["admission.k8s.io/v1", "admission.k8s.io/v1beta1"]
    kind: Literal["AdmissionReview"]
    response: ResponsePayload


class ConversionRequestPayload(TypedDict):
    uid: str
    desiredAPIVersion: str
    objects: list[bodies.RawBody]


class ConversionRequest(TypedDict):
    apiVersion: Literal["apiextensions.k8s.io/v1", "apiextensions.k8s.io/v1beta1"]
    kind: Literal["ConversionReview"]
    request: ConversionRequestPayload


class ConversionResult(TypedDict, total=False):
    status: Literal["Success", "Failure"]
    message: str


class ConversionResponsePayload(TypedDict):
    uid: str
    convertedObjects: list[bodies.RawBody]
    result: ConversionResult


class ConversionResponse(TypedDict):
    apiVersion: Literal["apiextensions.k8s.io/v1", "apiextensions.k8s.io/v1beta1"]
    kind: Literal["ConversionReview"]
    response: ConversionResponsePayload


class ServiceReference(TypedDict, total=False):
    namespace: str
    name: str
    path: str | None
    port: int | None


class WebhookClientConfig(TypedDict, total=False):
    """
    A config of clients (apiservers) to access the webhooks' server.

    The reconcilers only manage the ``caBundle`` and the ``service.path``;
    the rest of the service reference is expected to be pre-configured.
    """
    caBundle: str | None  # base64-encoded PEM; if absent, the default trust chain is used.
    url: str | None
    service: ServiceReference | None


class MatchExpression(TypedDict, total=False):
    key: str
    operator: Literal['Exists', 'DoesNotExist', 'In', 'NotIn']
    values: list[str] | None


class LabelSelector(TypedDict, total=False):
    matchLabels: dict[str, str] | None
    matchExpressions: list[MatchExpression] | None


class RuleWithOperations(TypedDict, total=False):
    operations: list[Operation]
    apiGroups: list[str]
    apiVersions: list[str]
    resources: list[str]
    scope: Literal['Cluster', 'Namespaced', '*']


class WebhookFn(Protocol):
    """
    A framework-provided function to call when a review request is received.

    Webhook servers accept the function, invoke it on every review request,
    wait for the review response, serialise it and send it back.
    """
    def __call__(
            self,
            request: Mapping[str, Any],
            *,
            webhook: str | None = None,
            headers: Headers | None = None,
            sslpeer: SSLPeer | None = None,
    ) -> Awaitable[Mapping[str, Any]]:
        ...
