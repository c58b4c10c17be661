# tests/conftest.py
import sys, pathlib, pytest

# --- make config.py importable without installing ---
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medsync import create_app, db
from medsync.services import log_store

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "WTF_CSRF_ENABLED": False,
    "RATELIMIT_ENABLED": False,
    "SERVER_NAME": "localhost",
    "APP_TIMEZONE": "UTC",
    "SECRET_KEY": "test-secret",
}

PASSWORD = "correct-horse-battery"

def _make_app(**overrides):
    app = create_app({**TEST_CONFIG, **overrides})
    with app.app_context():
        db.create_all()
    return app

@pytest.fixture()
def app():
    """Flask app in TESTING mode on a fresh in-memory database."""
    app = _make_app()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()

@pytest.fixture()
def csrf_app():
    """Same app with CSRF enforcement switched on."""
    app = _make_app(WTF_CSRF_ENABLED=True)
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    """Standard Flask test client fixture."""
    return app.test_client()

def signup(client, email, role="patient", name=None):
    r = client.post("/auth/signup", json={
        "email": email,
        "display_name": name or email.split("@")[0],
        "password": PASSWORD,
        "confirm": PASSWORD,
        "role": role,
    })
    assert r.status_code == 201, r.get_json()
    return r.get_json()

@pytest.fixture()
def patient(client):
    """Signed-up patient; the client stays logged in as them."""
    return signup(client, "eleanor@mail.com", name="Eleanor Thompson")

@pytest.fixture()
def add_med(client):
    def _add(name="Lisinopril", dosage=10, schedule="Once daily"):
        r = client.post("/api/medications", json={"name": name, "dosage": dosage, "schedule": schedule})
        assert r.status_code == 201, r.get_json()
        return r.get_json()
    return _add

@pytest.fixture()
def seed_log(app):
    """Write a log row directly, bypassing the today-only API rule."""
    def _seed(user_id, medication_id, day, status="taken"):
        with app.app_context():
            log_store.upsert_log(user_id, medication_id, day, status)
    return _seed
