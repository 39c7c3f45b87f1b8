"""
Pytest fixtures for Arcade Manager backend tests.

Provides test database setup, owner/store fixtures, a PayPal mock transport
and bearer-token headers.
"""

import httpx
import pytest

from arcade import create_app
from arcade.extensions import db
from arcade.models import User
from arcade.services import auth_service, session_service, store_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LEDGER_RETRY_BACKOFF_SECONDS': 0,
    'PAYPAL_CLIENT_ID': 'test-client',
    'PAYPAL_CLIENT_SECRET': 'test-secret',
    'PAYPAL_PLAN_ID': 'P-TESTPLAN',
    'PAYPAL_BASE_URL': 'https://paypal.test',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def owner(db_session):
    """Owner account with no stores yet."""
    return auth_service.register_owner(email="owner@arcade.test", password="secret1", name="Olive Owner")


@pytest.fixture(scope='function')
def other_owner(db_session):
    """Second, unrelated owner."""
    return auth_service.register_owner(email="rival@arcade.test", password="secret2", name="Rita Rival")


@pytest.fixture(scope='function')
def store_bundle(owner):
    """(store, credentials) for a free-tier store owned by `owner`."""
    return store_service.create_store(owner, name="Pixel Palace", address="1 Main St")


@pytest.fixture(scope='function')
def store(store_bundle):
    return store_bundle[0]


@pytest.fixture(scope='function')
def store_account(db_session, store):
    """Generated login account pinned to `store`."""
    return db_session.query(User).filter_by(staff_store_id=store.id).one()


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Return a function that issues a session for a user and builds its headers."""
    def _headers(user) -> dict:
        _, token = session_service.create_session(user.id)
        return auth_headers(token)
    return _headers


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


class FakePayPal:
    """
    Scripted PayPal API behind an httpx.MockTransport.

    `subscriptions` maps subscription id to the JSON PayPal would return for
    GET; `fail_cancel` makes cancellation return 422. Every request is kept
    in `requests` for assertions.
    """

    def __init__(self):
        self.subscriptions = {}
        self.requests = []
        self.fail_cancel = False
        self.created = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == '/v1/oauth2/token':
            return httpx.Response(200, json={'access_token': 'A21-test-token', 'token_type': 'Bearer'})

        if path == '/v1/billing/subscriptions' and request.method == 'POST':
            self.created += 1
            sub_id = f'I-SUB{self.created:04d}'
            self.subscriptions[sub_id] = {'id': sub_id, 'status': 'APPROVAL_PENDING'}
            return httpx.Response(201, json={
                'id': sub_id,
                'status': 'APPROVAL_PENDING',
                'links': [
                    {'rel': 'approve', 'href': f'https://paypal.test/approve?ba_token={sub_id}'},
                    {'rel': 'self', 'href': f'https://paypal.test/v1/billing/subscriptions/{sub_id}'},
                ],
            })

        if path.endswith('/cancel'):
            if self.fail_cancel:
                return httpx.Response(422, json={'name': 'UNPROCESSABLE_ENTITY'})
            return httpx.Response(204)

        if path.startswith('/v1/billing/subscriptions/'):
            sub_id = path.rsplit('/', 1)[-1]
            if sub_id not in self.subscriptions:
                return httpx.Response(404, json={'name': 'RESOURCE_NOT_FOUND'})
            return httpx.Response(200, json=self.subscriptions[sub_id])

        return httpx.Response(404, json={'name': 'NOT_FOUND'})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture(scope='function')
def paypal(app):
    """FakePayPal wired in as the transport for every PayPalClient.from_config()."""
    fake = FakePayPal()
    app.config['PAYPAL_TRANSPORT'] = httpx.MockTransport(fake)
    yield fake
    app.config.pop('PAYPAL_TRANSPORT', None)
