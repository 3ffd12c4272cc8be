"""
Type identities of the resources: API groups, versions, kinds, and plurals.

The identities are used as the keys of the registries, so they are immutable
and hashable. The plural names are guessed from the kinds the same way as
Kubernetes guesses them for the resources without the discovery information.
"""
from typing import NamedTuple


def pluralize(kind: str) -> str:
    """
    Guess the lowercased plural name of a resource from its kind.

    E.g. ``"Pod"`` → ``"pods"``, ``"Ingress"`` → ``"ingresses"``,
    ``"NetworkPolicy"`` → ``"networkpolicies"``.
    """
    singular = kind.lower()
    if not singular:
        return singular
    elif singular.endswith('s'):
        return singular + 'es'
    elif singular.endswith('y') and singular[-2:-1] not in ('a', 'e', 'i', 'o', 'u'):
        return singular[:-1] + 'ies'
    else:
        return singular + 's'


def split_api_version(api_version: str) -> tuple[str, str]:
    """ Split ``"group/version"`` into a group & a version; core API has no group. """
    group, _, version = api_version.rpartition('/')
    return group, version


class GroupKind(NamedTuple):
    group: str
    kind: str

    def __str__(self) -> str:
        return f'{self.kind}.{self.group}' if self.group else self.kind


class GroupVersionKind(NamedTuple):
    group: str
    version: str
    kind: str

    def __str__(self) -> str:
        return f'{self.api_version}, Kind={self.kind}'

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        group, version = split_api_version(api_version)
        return cls(group=group, version=version, kind=kind)

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(group=self.group, kind=self.kind)

    @property
    def plural(self) -> str:
        return pluralize(self.kind)


class GroupVersionResource(NamedTuple):
    group: str
    version: str
    resource: str

    def __str__(self) -> str:
        return f'{self.resource}.{self.version}.{self.group}'.strip('.')
