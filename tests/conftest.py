import asyncio
import inspect
import sys
from pathlib import Path

# Ensure src is on path
ROOT = Path(__file__).resolve().parent.parent
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from sessionguard.auth_api import create_app  # noqa: E402
from sessionguard.service.container import build_services  # noqa: E402
from sessionguard.service.mail_service import MailService  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-only-do-not-use-in-production"
TEST_LOCATION = "Culver City, California, United States"


class StaticGeolocation:
    """Stands in for the ip-api lookup"""

    def __init__(self, location: str = TEST_LOCATION):
        self.location = location
        self.calls = []

    async def locate(self, ip_address: str) -> str:
        self.calls.append(ip_address)
        return self.location


class FakeConnection:
    """Live-channel connection that records what it was sent"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_text(self, data: str):
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)


@pytest.fixture
def sent_mail(mocker):
    return mocker.patch("resend.Emails.send", return_value={"id": "email_test"})


@pytest.fixture
def services(tmp_path, sent_mail):
    svc = build_services(
        database_url=f"sqlite:///{tmp_path / 'sessionguard_test.db'}",
        jwt_secret=TEST_SECRET,
        mail=MailService(api_key="re_test", sender="admin@x.com"),
        geolocation=StaticGeolocation(),
        stripe_api_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
    )
    yield svc
    svc.engine.dispose()


@pytest.fixture
def client(services):
    app = create_app(services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    def _register(email="a@x.com", password="pw1", name="Alice"):
        response = client.post(
            "/register-user", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _register


@pytest.fixture
def login(client):
    def _login(email="a@x.com", password="pw1", device="pytest-device"):
        response = client.post(
            "/login-user",
            json={"email": email, "password": password},
            headers={"User-Agent": device},
        )
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None
