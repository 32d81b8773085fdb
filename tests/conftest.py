import os

# Must be set before config.settings / config.database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ["FLASK_LIMITER_STORAGE_URI"] = "memory://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from config.database import Base, SessionLocal, engine, init_db
from models.property import Property
from models.user import User
from ws.presence import InMemoryPresenceRegistry


@pytest.fixture(autouse=True)
def _schema():
    init_db()
    yield
    SessionLocal.remove()
    Base.metadata.drop_all(engine)


@pytest.fixture
def app():
    return create_app({
        "TESTING": True,
        "RATELIMIT_ENABLED": False,
        "REDIS_URL": None,
        "SOCKETIO_ASYNC_MODE": "threading",
        "PRESENCE_BACKEND": "memory",
        "CREATE_TABLES": False,
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db():
    """Plain session, independent of the request-scoped SessionLocal."""
    session = SessionLocal.session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(display_name=None, role="tenant", email=None, avatar_url=None):
        counter["n"] += 1
        session = SessionLocal.session_factory()
        try:
            user = User(
                email=email or f"user{counter['n']}@example.com",
                role=role,
                display_name=display_name,
                avatar_url=avatar_url,
            )
            session.add(user)
            session.commit()
            return user.user_id
        finally:
            session.close()

    return _make


@pytest.fixture
def make_property():
    def _make(owner_id, title="Sunny 2BR Apartment", photos=None, status="pending"):
        session = SessionLocal.session_factory()
        try:
            prop = Property(
                user_id=owner_id,
                title=title,
                price=1200,
                photos=photos if photos is not None else ["https://img.example.com/1.jpg",
                                                          "https://img.example.com/2.jpg"],
                status=status,
            )
            session.add(prop)
            session.commit()
            return prop.property_id
        finally:
            session.close()

    return _make


@pytest.fixture
def token_for(app):
    def _token(user_id, role=None):
        claims = {"role": role} if role else None
        with app.app_context():
            return create_access_token(identity=str(user_id), additional_claims=claims)

    return _token


@pytest.fixture
def auth_headers(token_for):
    def _headers(user_id, role=None):
        return {"Authorization": f"Bearer {token_for(user_id, role)}"}

    return _headers


class RecordingEmitter:
    """Stands in for socketio.emit in service-level tests."""

    def __init__(self):
        self.calls = []

    def __call__(self, event, payload, to=None):
        self.calls.append((event, payload, to))

    def events_for(self, sid):
        return [event for event, _, to in self.calls if to == sid]


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def presence(emitter):
    return InMemoryPresenceRegistry(emitter)


@pytest.fixture
def people(make_user, make_property):
    """Landlord A owning P1 and P2, tenant B, tenant C."""
    a = make_user("Alice Landlord", role="landlord")
    b = make_user("Bob Tenant")
    c = make_user("Carol Tenant")
    p1 = make_property(a, title="Sunny 2BR Apartment")
    p2 = make_property(a, title="Garden Cottage", photos=[])
    return {"a": a, "b": b, "c": c, "p1": p1, "p2": p2}
