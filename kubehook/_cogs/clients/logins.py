"""
Rudimentary logins to K8s API: via the service account or a kubeconfig.

The framework is not a client library, and avoids bringing too much logic
for proper authentication, especially all the complex auth-providers.
The webhooks run in-cluster in most cases, where the service account
is enough; the kubeconfig is for running the operator locally.

.. seealso::
    :mod:`kubehook._cogs.structs.credentials`.
"""
import os
from typing import Any

import yaml

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import credentials

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """
    Login with the first available method: the service account, then kubeconfig.
    """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Logged in with the service account.")
        return info

    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Logged in with the kubeconfig.")
        return info

    raise credentials.LoginError("Cannot login neither in-cluster, nor via kubeconfig.")


def login_with_service_account(
        path: str = SERVICE_ACCOUNT_DIR,
) -> credentials.ConnectionInfo | None:
    token_path = os.path.join(path, 'token')
    ns_path = os.path.join(path, 'namespace')
    ca_path = os.path.join(path, 'ca.crt')

    if not os.path.exists(token_path):
        return None

    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: str | None = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    return credentials.ConnectionInfo(
        server='https://kubernetes.default.svc',
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def login_with_kubeconfig(
        kubeconfig: str | None = None,
) -> credentials.ConnectionInfo | None:
    """
    Get the raw credentials of the current context from the kubeconfig files.

    No token refreshing is performed: the auth-providers' tokens are used
    as they are stored in the kubeconfig, and can be expired.
    """

    # As per https://kubernetes.io/docs/concepts/configuration/organize-cluster-access-kubeconfig/
    kubeconfig = kubeconfig or os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser('~/.kube/config')):
        kubeconfig = '~/.kube/config'
    if not kubeconfig:
        return None

    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    paths = [os.path.expanduser(path) for path in paths if path]

    # If a file is absent or non-deserialisable, then fail. The first value wins.
    current_context: str | None = None
    contexts: dict[Any, Any] = {}
    clusters: dict[Any, Any] = {}
    users: dict[Any, Any] = {}
    for path in paths:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}

        if current_context is None:
            current_context = config.get('current-context')
        for section, target, field in [
            ('contexts', contexts, 'context'),
            ('clusters', clusters, 'cluster'),
            ('users', users, 'user'),
        ]:
            for item in config.get(section) or []:
                target.setdefault(item['name'], item.get(field) or {})

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    context = contexts[current_context]
    cluster = clusters[context['cluster']]
    user = users[context['user']]
    provider_token = user.get('auth-provider', {}).get('config', {}).get('access-token')

    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
    )
