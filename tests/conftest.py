import os

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("IDENTITY_JWT_KEY", "test-identity-key")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest
from httpx import ASGITransport, AsyncClient
from pypdf import PdfReader
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.core.exceptions import GatewayFailure, StorageFailure
from app.core.security import Visitor, create_access_token
from app.database import Base, get_db
from app.gateways.base import PaymentOrder, to_minor_units
from app.gateways.razorpay import RazorpayGateway
from app.models import Booking, Category, Institution
from app.schemas.booking import BookingCreate
from app.services.booking_service import BookingService
from app.services.receipt_service import ReceiptRenderer


class FakeGateway(RazorpayGateway):
    """Real signature checks; orders and payments served from memory."""

    def __init__(self) -> None:
        super().__init__(settings=settings)
        self.orders: list[tuple[Decimal, PaymentOrder, dict | None]] = []
        self.payments: dict[str, dict] = {}
        self.fail_orders = False

    async def create_order(self, amount, currency, receipt, notes=None) -> PaymentOrder:
        if self.fail_orders:
            raise GatewayFailure("simulated outage")
        order = PaymentOrder(
            order_id=f"order_{len(self.orders) + 1:04d}",
            amount=to_minor_units(amount),
            currency=currency,
            receipt=receipt,
        )
        self.orders.append((amount, order, notes))
        return order

    async def fetch_payment(self, payment_id: str) -> dict:
        if payment_id not in self.payments:
            raise GatewayFailure(f"payment {payment_id} not found")
        return self.payments[payment_id]

    def sign(self, order_id: str, payment_id: str) -> str:
        return self._generate_signature(order_id, payment_id)


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail = False

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageFailure("simulated outage")
        self.objects[key] = (data, content_type)
        return f"https://receipts.test/{key}"

    def get_presigned_url(self, key: str, expires_in: int | None = None) -> str:
        return f"https://receipts.test/{key}?X-Amz-Expires={expires_in or 3600}"


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str | None, str, bytes]] = []
        self.error: Exception | None = None

    async def send_booking_confirmation(self, visitor_email, booking, institution, receipt_bytes) -> bool:
        self.sent.append((visitor_email, booking.booking_id, receipt_bytes))
        if self.error is not None:
            raise self.error
        return True


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def institution(session_maker) -> Institution:
    async with session_maker() as session:
        category = Category(id="C1", name="School", slug="school")
        institution = Institution(
            id="I1",
            category_id="C1",
            name="Green Valley Public School",
            slug="green-valley-public-school",
            address="12 Lake Road, Kothrud",
            city="Pune",
            state="Maharashtra",
            contact={"phone": "+912025431234", "email": "office@greenvalley.edu.in"},
            visiting_hours=[{"day": "Monday", "hours": "09:00 - 15:00"}],
            booking_amount=Decimal("2000.00"),
        )
        session.add_all([category, institution])
        await session.commit()
        return institution


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def renderer() -> ReceiptRenderer:
    return ReceiptRenderer()


@pytest.fixture
def service(db, gateway, renderer, storage, notifier) -> BookingService:
    return BookingService(
        db=db,
        gateway=gateway,
        renderer=renderer,
        storage=storage,
        notifier=notifier,
    )


@pytest.fixture
def visitor() -> Visitor:
    return Visitor(id="U1", email="asha@example.com")


@pytest.fixture
def booking_request() -> BookingCreate:
    return BookingCreate(
        institution_id="I1",
        visit_date=date(2025, 5, 1),
        visit_time="10:00",
        amount=Decimal("2000.00"),
        visitor_name="Asha",
    )


async def fetch_booking(session_maker, booking_id: str) -> Booking | None:
    """Read a booking through a fresh session."""
    async with session_maker() as session:
        return await session.get(Booking, booking_id)


@pytest.fixture
async def client(session_maker, gateway, renderer, storage, notifier):
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.gateway = gateway
    app.state.renderer = renderer
    app.state.storage = storage
    app.state.notifier = notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user_id: str = "U1", role: str = "USER", email: str | None = "asha@example.com") -> dict:
    token = create_access_token(user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


def pdf_text(pdf: bytes) -> str:
    return "\n".join(page.extract_text() for page in PdfReader(BytesIO(pdf)).pages)
