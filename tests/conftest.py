from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from main import app
from hackathon_core.adapters.events import InMemoryEventBus
from hackathon_core.adapters.identity import SessionIdentity, hash_password
from hackathon_core.adapters.notifier import DatabaseNotifier
from hackathon_core.config import SESSION_COOKIE_NAME
from hackathon_core.database import enable_sqlite_foreign_keys, get_session
from hackathon_core.dependencies import get_clock, get_notifier
from hackathon_core.models import Hackathon, User
from hackathon_core.services.notifications import Broadcaster
from hackathon_core.services.registrations import RegistrationService
from hackathon_core.services.scoring import ScoringService
from hackathon_core.services.submissions import SubmissionService
from hackathon_core.services.teams import TeamService
from hackathon_core.services.winners import WinnerService

# Create in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine)

NOW = datetime(2026, 3, 2, 12, 0, 0)


class FrozenClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, kind, title, message, link=None):
        self.sent.append({"user_id": user_id, "kind": kind, "title": title, "message": message, "link": link})

    def kinds_for(self, user_id):
        return [n["kind"] for n in self.sent if n["user_id"] == user_id]


class Services:
    """The five services wired the same way the API wires them."""

    def __init__(self, db, clock, notifier=None, events=None):
        self.notifier = notifier or RecordingNotifier()
        self.events = events or InMemoryEventBus()
        broadcaster = Broadcaster(notifier=self.notifier, events=self.events)
        identity = SessionIdentity(db)
        self.teams = TeamService(db, identity, broadcaster, clock)
        self.registrations = RegistrationService(db, self.teams, broadcaster, clock)
        self.submissions = SubmissionService(db, self.registrations, self.teams, broadcaster, clock)
        self.scoring = ScoringService(db, identity, self.submissions, broadcaster, clock)
        self.winners = WinnerService(db, self.scoring, self.submissions, broadcaster, clock)


def create_user(db: Session, email: str, role: str = "participant") -> User:
    user = User(
        email=email.lower(),
        display_name=email.split("@")[0],
        role=role,
        password_hash=hash_password("password123")
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_hackathon(db: Session, now: datetime = NOW, **overrides) -> Hackathon:
    """Registration open for a day, hackathon runs from day one to day three."""
    values = dict(
        title="Spring Hack",
        registration_deadline=now + timedelta(days=1),
        start_at=now + timedelta(days=1),
        end_at=now + timedelta(days=3),
        max_team_size=4,
    )
    values.update(overrides)
    hackathon = Hackathon(**values)
    db.add(hackathon)
    db.commit()
    db.refresh(hackathon)
    return hackathon


@pytest.fixture(name="make_user")
def make_user_fixture(session: Session):
    def make_user(email: str, role: str = "participant") -> User:
        return create_user(session, email, role)
    return make_user


@pytest.fixture(name="make_hackathon")
def make_hackathon_fixture(session: Session, organizer: User):
    def make_hackathon(**overrides) -> Hackathon:
        overrides.setdefault("owner_id", organizer.id)
        return create_hackathon(session, **overrides)
    return make_hackathon


@pytest.fixture(name="session")
def session_fixture():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="clock")
def clock_fixture():
    return FrozenClock(NOW)


@pytest.fixture(name="services")
def services_fixture(session: Session, clock: FrozenClock):
    return Services(session, clock)


@pytest.fixture(name="build_services")
def build_services_fixture():
    """Wire services around a session of your own, e.g. one per thread."""
    return Services


@pytest.fixture(name="organizer")
def organizer_fixture(session: Session):
    return create_user(session, "org@example.com", role="organizer")


@pytest.fixture(name="hackathon")
def hackathon_fixture(session: Session, organizer: User):
    return create_hackathon(session, owner_id=organizer.id)


@pytest.fixture(name="alice")
def alice_fixture(session: Session):
    return create_user(session, "alice@example.com")


@pytest.fixture(name="bob")
def bob_fixture(session: Session):
    return create_user(session, "bob@example.com")


@pytest.fixture(name="carol")
def carol_fixture(session: Session):
    return create_user(session, "carol@example.com")


@pytest.fixture(name="judge")
def judge_fixture(session: Session):
    return create_user(session, "judge@example.com", role="judge")


@pytest.fixture(name="client")
def client_fixture(session: Session, clock: FrozenClock):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: DatabaseNotifier(engine)
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="login")
def login_fixture(client: TestClient, session: Session):
    """Return a function that makes the client act as the given user."""
    def login(user: User) -> str:
        token = SessionIdentity(session).create_session(user.id)
        client.cookies.set(SESSION_COOKIE_NAME, token)
        return token
    return login


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite shared by several threads, one connection each.

    Transactions begin IMMEDIATE so a second writer waits on the busy
    timeout instead of failing its lock upgrade.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(file_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(file_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    SQLModel.metadata.create_all(file_engine)
    yield file_engine
    file_engine.dispose()
