import base64

import pytest

from kubehook._cogs.structs.references import CRDS, MUTATING_WEBHOOK, SECRETS
from kubehook._core.reactor.informers import Informer
from kubehook._core.reactor.leadership import ObjectKey
from kubehook._core.reactor.queueing import WorkQueue

CA_CERT = b'-----BEGIN CERTIFICATE-----\nfake\n-----END CERTIFICATE-----\n'


@pytest.fixture()
def ca_bundle():
    return base64.b64encode(CA_CERT).decode('ascii')


@pytest.fixture()
def secrets(settings, ca_bundle):
    informer = Informer(settings=settings, resource=SECRETS, namespace='default')
    informer._store[ObjectKey('default', 'webhook-certs')] = {
        'metadata': {'name': 'webhook-certs', 'namespace': 'default'},
        'data': {'ca-cert.pem': ca_bundle, 'server-cert.pem': '', 'server-key.pem': ''},
    }
    return informer


@pytest.fixture()
def objects(settings):
    return Informer(settings=settings, resource=MUTATING_WEBHOOK)


@pytest.fixture()
def crds(settings):
    return Informer(settings=settings, resource=CRDS)


@pytest.fixture()
def queue(settings):
    return WorkQueue(settings=settings, name='test')


@pytest.fixture()
def replace_obj(mocker):
    return mocker.patch('kubehook._cogs.clients.updating.replace_obj')
