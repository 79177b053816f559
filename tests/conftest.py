# tests/conftest.py
import os
import tempfile

import pytest
from fastapi.testclient import TestClient

# Local SQLite file unless a real database is configured
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'coursepay_test.db')}",
)
os.environ.setdefault("PAYOS_CLIENT_ID", "test-client")
os.environ.setdefault("PAYOS_API_KEY", "test-api-key")
os.environ.setdefault("PAYOS_CHECKSUM_KEY", "test-checksum-key")
os.environ.setdefault("CLIENT_URL", "http://localhost:5173")
os.environ.setdefault("LOG_JSON", "false")

from sqlalchemy import func, select  # noqa: E402

from coursepay.main import app  # noqa: E402
from coursepay.db import engine, SessionLocal  # noqa: E402
from coursepay.deps import get_gateway, get_notifier  # noqa: E402
from coursepay.gateway import PayOSGateway, canonical_data, sign  # noqa: E402
from coursepay.models import Base, Course, Instructor, Wallet  # noqa: E402
from coursepay.notifications import Notifier  # noqa: E402
from coursepay.repositories import unit_of_work_factory  # noqa: E402

CHECKSUM_KEY = os.environ["PAYOS_CHECKSUM_KEY"]

INSTRUCTOR_ID = "instructor-1"
COURSE_ID = "course-1"
COURSE_PRICE = 100000

LEARNER = {"X-User-Id": "learner-1", "X-User-Role": "LEARNER"}
OTHER_LEARNER = {"X-User-Id": "learner-2", "X-User-Role": "LEARNER"}
INSTRUCTOR = {"X-User-Id": INSTRUCTOR_ID, "X-User-Role": "INSTRUCTOR"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


class FakePayOSHttp:
    """Stands in for requests.Session; answers like the PayOS merchant API."""

    def __init__(self):
        self.calls = []
        self.fail_with = None  # (status_code, body) for the next call
        self.raise_exc = None

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers})
        if self.raise_exc is not None:
            exc, self.raise_exc = self.raise_exc, None
            raise exc
        if self.fail_with is not None:
            (status, body), self.fail_with = self.fail_with, None
            return FakeResponse(status, body)

        path = url.split("api-merchant.payos.vn", 1)[-1]
        if method == "POST" and path == "/v2/payment-requests":
            code = json["orderCode"]
            data = {
                "orderCode": code,
                "amount": json["amount"],
                "description": json["description"],
                "checkoutUrl": f"https://pay.payos.vn/web/{code}",
                "paymentLinkId": f"link-{code}",
                "status": "PENDING",
                "qrCode": "000201010212",
            }
        elif method == "POST" and path.endswith("/cancel"):
            code = path.split("/")[3]
            reason = (json or {}).get("cancellationReason")
            data = {"id": f"link-{code}", "orderCode": int(code), "amount": 100000, "amountPaid": 0,
                    "status": "CANCELLED", "cancellationReason": reason}
        elif method == "GET" and path.startswith("/v2/payment-requests/"):
            code = path.rsplit("/", 1)[-1]
            data = {"id": f"link-{code}", "orderCode": int(code), "amount": 100000, "amountPaid": 0,
                    "status": "PENDING", "createdAt": "2026-10-19T10:00:00+07:00", "transactions": []}
        elif method == "POST" and path == "/confirm-webhook":
            data = None
        else:
            return FakeResponse(404, {"code": "404", "desc": "not found"})
        return FakeResponse(200, {"code": "00", "desc": "success", "data": data})

    def created_links(self):
        return [c for c in self.calls if c["method"] == "POST" and c["url"].endswith("/v2/payment-requests")]


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []
        self.fail = False

    def notify(self, to, subject, body):
        if self.fail:
            raise RuntimeError("smtp unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body})


@pytest.fixture(autouse=True)
def create_schema_and_clean_db():
    # Fresh tables per test so they don't interfere
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def http():
    return FakePayOSHttp()


@pytest.fixture
def gateway(http):
    return PayOSGateway("test-client", "test-api-key", CHECKSUM_KEY, http=http)


@pytest.fixture
def uow_factory():
    return unit_of_work_factory(SessionLocal)


@pytest.fixture
def catalog():
    with SessionLocal() as db:
        db.add_all([
            Instructor(user_id=INSTRUCTOR_ID, email="instructor1@example.com", organization="GradeStack"),
            Instructor(user_id="instructor-2", email="other@example.com"),
            Instructor(user_id="instructor-no-wallet"),
        ])
        db.flush()
        db.add_all([
            Wallet(instructor_id=INSTRUCTOR_ID, balance=0),
            Wallet(instructor_id="instructor-2", balance=0),
            Course(id=COURSE_ID, instructor_id=INSTRUCTOR_ID, title="Python 101", price=COURSE_PRICE, is_published=True),
            Course(id="course-draft", instructor_id=INSTRUCTOR_ID, title="Draft", price=50000, is_published=False),
            Course(id="course-other", instructor_id="instructor-2", title="Go 101", price=70000, is_published=True),
            Course(id="course-orphan", instructor_id="instructor-no-wallet", title="Rust", price=90000, is_published=True),
        ])
        db.commit()
    return {"instructor_id": INSTRUCTOR_ID, "course_id": COURSE_ID, "price": COURSE_PRICE}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def count_rows():
    def _count(model, *where):
        with SessionLocal() as db:
            stmt = select(func.count()).select_from(model)
            for clause in where:
                stmt = stmt.where(clause)
            return db.execute(stmt).scalar_one()
    return _count


@pytest.fixture
def wallet_balance():
    def _balance(instructor_id=INSTRUCTOR_ID):
        with SessionLocal() as db:
            return db.execute(
                select(Wallet.balance).where(Wallet.instructor_id == instructor_id)
            ).scalar_one()
    return _balance


@pytest.fixture
def signed_webhook():
    def _payload(order_code, amount=COURSE_PRICE, code="00", key=CHECKSUM_KEY):
        data = {
            "orderCode": order_code,
            "amount": amount,
            "description": "Payment for course",
            "accountNumber": "12345678",
            "reference": f"FT{order_code}",
            "transactionDateTime": "2026-10-19 10:05:00",
            "currency": "VND",
            "paymentLinkId": f"link-{order_code}",
            "code": code,
            "desc": "success" if code == "00" else "failed",
            "counterAccountBankId": None,
            "counterAccountName": None,
            "virtualAccountName": "",
        }
        return {
            "code": "00",
            "desc": "success",
            "success": True,
            "data": data,
            "signature": sign(key, canonical_data(data)),
        }
    return _payload


@pytest.fixture
def create_payment(client, catalog):
    def _create(headers=LEARNER, course_id=COURSE_ID, price=COURSE_PRICE, instructor_id=INSTRUCTOR_ID):
        return client.post(
            "/checkout/create-payment",
            json={"courseId": course_id, "price": price, "instructorId": instructor_id, "courseName": "Python 101"},
            headers=headers,
        )
    return _create


@pytest.fixture
def settle_purchase(client, create_payment, signed_webhook):
    """Buy course-1 as learner-1 and deliver the paid webhook; wallet ends at 85000."""
    def _settle(headers=LEARNER):
        order = create_payment(headers=headers).json()
        r = client.post("/checkout/webhook", json=signed_webhook(order["orderCode"]))
        assert r.status_code == 200
        return order
    return _settle
