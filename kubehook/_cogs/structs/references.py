"""
References to the API resources, as needed to build the URLs of K8s API.

Unlike :class:`GroupVersionKind`, which identifies the users' resource types
as they come in the admission reviews, these references identify the API
endpoints of the few built-in resources that the framework itself works with.
"""
import dataclasses
import urllib.parse

# A namespace reference usable in the API calls. `None` means cluster-wide API calls.
Namespace = str | None


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    A reference to a very specific custom or built-in resource kind.
    """

    group: str
    """
    The resource's API group; e.g. ``"admissionregistration.k8s.io"``.
    For Core v1 API resources, an empty string: ``""``.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``, ``"v1beta1"``, etc.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"secrets"``.
    It is used as an API endpoint, together with API group & version.
    """

    namespaced: bool = False
    """
    Whether the resource is namespaced (``True``) or cluster-scoped (``False``).
    """

    def __str__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: str | None = None,
            namespace: Namespace = None,
            name: str | None = None,
            params: dict[str, str] | None = None,
    ) -> str:
        """
        Build a URL to be used with K8s API.

        If the namespace is not set, a cluster-wide URL is returned.
        For cluster-scoped resources, the namespace must not be set.

        If the name is not set, the URL for the resource list is returned.
        Otherwise (if set), the URL for the individual resource is returned.

        Params go to the query parameters (``?param1=value1&param2=value2...``).
        """
        if not self.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        parts: list[str | None] = [
            '/api' if self.group == '' and self.version == 'v1' else '/apis',
            self.group,
            self.version,
            'namespaces' if self.namespaced and namespace is not None else None,
            namespace if self.namespaced and namespace is not None else None,
            self.plural,
            name,
        ]

        query = urllib.parse.urlencode(params, encoding='utf-8') if params else ''
        path = '/'.join([part for part in parts if part])
        url = path + ('?' if query else '') + query
        return url if server is None else server.rstrip('/') + '/' + url.lstrip('/')


SECRETS = Resource('', 'v1', 'secrets', namespaced=True)
CRDS = Resource('apiextensions.k8s.io', 'v1', 'customresourcedefinitions')
MUTATING_WEBHOOK = Resource('admissionregistration.k8s.io', 'v1', 'mutatingwebhookconfigurations')
VALIDATING_WEBHOOK = Resource('admissionregistration.k8s.io', 'v1', 'validatingwebhookconfigurations')
