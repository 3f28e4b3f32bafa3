import threading

import pytest

from app import create_app
from data_store import InMemoryDatabase
from firebase_auth import IdentityError


class StubIdentity:
    """Accepts the ID tokens registered in self.accounts"""

    def __init__(self):
        self.accounts = {}

    def add(self, token, uid, email, name=''):
        self.accounts[token] = {'uid': uid, 'email': email, 'name': name, 'picture': ''}

    def verify(self, id_token):
        try:
            return dict(self.accounts[id_token])
        except KeyError:
            raise IdentityError('unknown token')


class DeferredListenerDatabase(InMemoryDatabase):
    """Delivers subscription values later on a timer thread, the way Firebase listeners do"""

    def subscribe(self, path, callback):
        def deliver(value):
            threading.Timer(0.05, callback, args=(value,)).start()
        return super().subscribe(path, deliver)


@pytest.fixture
def database():
    return InMemoryDatabase()


@pytest.fixture
def deferred_database():
    return DeferredListenerDatabase()


@pytest.fixture
def identity():
    stub = StubIdentity()
    stub.add('token-owner', 'uid-owner', 'owner@firm.test', 'Olivia Owner')
    stub.add('token-editor', 'uid-editor', 'editor@firm.test', 'Eddie Editor')
    stub.add('token-viewer', 'uid-viewer', 'viewer@firm.test', 'Vera Viewer')
    stub.add('token-stranger', 'uid-stranger', 'stranger@elsewhere.test', 'Sam Stranger')
    return stub


@pytest.fixture
def app(database, identity):
    app = create_app({'TESTING': True, 'SECRET_KEY': 'test', 'SSE_KEEPALIVE_SECONDS': 0.05},
                     database=database, identity=identity)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sign_in(app):
    """Return a test client signed in with the given stub token"""
    def _sign_in(token):
        test_client = app.test_client()
        response = test_client.post('/auth/session', json={'idToken': token})
        assert response.status_code == 200, response.get_json()
        return test_client
    return _sign_in


@pytest.fixture
def onboarding_payload():
    return {
        'name': 'ABC Pvt Ltd',
        'address': 'Kathmandu, Nepal',
        'fyPeriodEnd': '2024-07-15',
        'frf': 'NFRS',
    }


@pytest.fixture
def report_payload():
    return {
        'engagementPartnerName': 'Ram Sharma',
        'designation': 'Partner',
        'auditFirmName': 'Sharma & Co.',
        'reportDate': '2024-10-01',
        'reportPlace': 'Kathmandu',
        'keyAuditMatters': '',
        'udin': '241001CA00123abc',
        'firmRegistrationNumber': '123-060/61',
        'includeOtherInformation': False,
    }
