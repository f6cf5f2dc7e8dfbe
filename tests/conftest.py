"""Test configuration."""
import hashlib
import hmac
import json
import os
import time
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import replace
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# --- Default env, before anything from app is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./gooddeedhub_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GDH_ENV", "dev")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from app.main import app  # noqa: E402
from app.config import Settings  # noqa: E402
from app.db import build_engine, get_db  # noqa: E402
from app.models import Cause, CauseStatus, DonorProfile, User, UserRole  # noqa: E402
from app.models.api_key import ApiKey  # noqa: E402
from app.routers.payments import get_payment_gateway  # noqa: E402
from app.services.payment_metadata import DonationMetadata  # noqa: E402
from app.services.psp_stripe import GatewayIntent, GatewaySession, StripeGateway  # noqa: E402
from app.utils.apikey import hash_key  # noqa: E402
from app.utils.errors import GatewayError  # noqa: E402

DB_PATH = Path("./gooddeedhub_test.db")
WEBHOOK_SECRET = "whsec_test_secret"


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file per test session
if DB_PATH.exists():
    DB_PATH.unlink()

# Same engine setup as the app, SQLite transaction handling included.
engine = build_engine(os.environ["DATABASE_URL"])


# --- (2) Schema comes from Alembic only
_run_migrations()


class FakeGateway(StripeGateway):
    """Real webhook verification, in-memory intents and sessions."""

    def __init__(self) -> None:
        super().__init__(
            Settings(
                STRIPE_SECRET_KEY="sk_test_fake",
                STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
                PAYMENT_CURRENCY="inr",
            )
        )
        self.intents: dict[str, GatewayIntent] = {}
        self.sessions: dict[str, GatewaySession] = {}
        self.failing_lookups: set[str] = set()
        self.calls: list[str] = []
        self.last_redirects: tuple[str, str] | None = None

    # --- helpers for tests
    def add_intent(
        self,
        *,
        metadata: DonationMetadata | None,
        status: str = "succeeded",
        intent_id: str | None = None,
    ) -> GatewayIntent:
        intent = GatewayIntent(
            id=intent_id or f"pi_{uuid4().hex[:16]}",
            status=status,
            amount=(metadata.total_amount if metadata else 0) * 100,
            currency=self.currency,
            client_secret=f"secret_{uuid4().hex[:8]}",
            metadata=metadata.to_gateway() if metadata else {},
        )
        self.intents[intent.id] = intent
        return intent

    def set_intent_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id] = replace(self.intents[intent_id], status=status)

    def add_session(self, *, intent: GatewayIntent | None, payment_status: str = "paid") -> GatewaySession:
        session = GatewaySession(
            id=f"cs_test_{uuid4().hex[:16]}",
            payment_status=payment_status,
            url="https://checkout.stripe.test/pay",
            payment_intent_id=intent.id if intent else None,
            payment_intent=intent,
            metadata=dict(intent.metadata) if intent else {},
        )
        self.sessions[session.id] = session
        return session

    # --- StripeGateway surface
    def create_payment_intent(self, *, amount: int, metadata: DonationMetadata) -> GatewayIntent:
        self.calls.append("create_payment_intent")
        intent = self.add_intent(metadata=metadata, status="requires_payment_method")
        intent = replace(intent, amount=amount * 100)
        self.intents[intent.id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id: str) -> GatewayIntent:
        self.calls.append("retrieve_payment_intent")
        if intent_id in self.failing_lookups or intent_id not in self.intents:
            raise GatewayError("Could not retrieve payment intent.", code="STRIPE_INTENT_LOOKUP_FAILED")
        return self.intents[intent_id]

    def create_checkout_session(
        self,
        *,
        amount: int,
        title: str,
        metadata: DonationMetadata,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession:
        self.calls.append("create_checkout_session")
        intent = self.add_intent(metadata=metadata, status="requires_payment_method")
        session = self.add_session(intent=intent, payment_status="unpaid")
        session = replace(session, url=f"https://checkout.stripe.test/{session.id}?success={success_url}")
        self.sessions[session.id] = session
        self.last_redirects = (success_url, cancel_url)
        return session

    def retrieve_checkout_session(self, session_id: str) -> GatewaySession:
        self.calls.append("retrieve_checkout_session")
        if session_id not in self.sessions:
            raise GatewayError("Could not retrieve checkout session.", code="STRIPE_SESSION_LOOKUP_FAILED")
        return self.sessions[session_id]


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""

    ts = timestamp if timestamp is not None else int(time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str | None = None) -> bytes:
    return json.dumps(
        {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
    ).encode("utf-8")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(autouse=True)
def override_dependencies(db_session: Session, gateway: FakeGateway) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory creating a user; donors get their donor profile."""

    def _factory(role: UserRole = UserRole.donor, *, is_active: bool = True) -> User:
        suffix = uuid4().hex[:8]
        user = User(
            username=f"{role.value}-{suffix}",
            email=f"{role.value}-{suffix}@example.com",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()
        if role == UserRole.donor:
            db_session.add(DonorProfile(user_id=user.id, total_donations=0))
            db_session.flush()
        db_session.commit()
        db_session.refresh(user)
        return user

    return _factory


@pytest.fixture
def make_cause(db_session: Session) -> Callable[..., Cause]:
    def _factory(
        status: CauseStatus = CauseStatus.approved,
        *,
        goal_amount: int = 100_000,
        title: str = "School meals",
        category: str | None = None,
    ) -> Cause:
        cause = Cause(
            title=title, category=category, goal_amount=goal_amount, current_amount=0, status=status
        )
        db_session.add(cause)
        db_session.commit()
        db_session.refresh(cause)
        return cause

    return _factory


@pytest.fixture
def make_headers(db_session: Session) -> Callable[[User], dict[str, str]]:
    """Issue a bearer key for ``user`` and return the matching headers."""

    def _factory(user: User, *, is_active: bool = True) -> dict[str, str]:
        token = f"gdh_test.{uuid4().hex}"
        db_session.add(
            ApiKey(
                name=f"test-{uuid4().hex}",
                prefix="gdh_test",
                key_hash=hash_key(token),
                user_id=user.id,
                is_active=is_active,
            )
        )
        db_session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def donor_user(make_user: Callable[..., User]) -> User:
    return make_user(UserRole.donor)


@pytest.fixture
def donor(donor_user: User) -> DonorProfile:
    return donor_user.donor_profile


@pytest.fixture
def cause(make_cause: Callable[..., Cause]) -> Cause:
    return make_cause()


@pytest.fixture
def donor_headers(donor_user: User, make_headers: Callable[..., dict[str, str]]) -> dict[str, str]:
    return make_headers(donor_user)


@pytest.fixture
def admin_headers(make_user: Callable[..., User], make_headers: Callable[..., dict[str, str]]) -> dict[str, str]:
    return make_headers(make_user(UserRole.admin))


@pytest.fixture
def metadata_for(donor: DonorProfile, cause: Cause) -> Callable[..., DonationMetadata]:
    """Metadata as the intent factory writes it, for gross 1000 by default."""

    def _factory(
        *,
        net_amount: int = 950,
        platform_fee: int = 50,
        is_anonymous: bool = False,
        message: str | None = None,
        cause_id: int | None = None,
        donor_id: int | None = None,
    ) -> DonationMetadata:
        return DonationMetadata(
            cause_id=cause_id if cause_id is not None else cause.id,
            donor_id=donor_id if donor_id is not None else donor.id,
            net_amount=net_amount,
            platform_fee=platform_fee,
            is_anonymous=is_anonymous,
            message=message,
        )

    return _factory
