import base64
import json
import os
import re
from datetime import date, time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, unquote

from cryptography.fernet import Fernet

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timetracker.database import Base
from timetracker.models import Activity, Customer, Entry, Project, TicketSystem, User, UserTicketSystem
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.utils.encrypt import encrypt_token

JIRA_URL = "https://jira.example.com"
CALLBACK_URL = "https://timetracker.example.com/jiraoauthcallback"
API = "/rest/api/latest/"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeJira:
    """
    In-memory Jira answering through httpx.MockTransport.
    Unknown routes answer 404 like Jira does for missing resources.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Union[Callable, Tuple[int, Dict[str, Any]]]] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json: Any = None, text: Optional[str] = None,
            handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        if not path.startswith("/plugins/"):
            path = API + path.lstrip("/")
        if handler is not None:
            self.routes[(method, path)] = handler
            return
        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        elif text is not None:
            kwargs["text"] = text
        self.routes[(method, path)] = (status, kwargs)

    def add_issue(self, key: str, fields: Optional[Dict[str, Any]] = None):
        self.add("GET", f"issue/{key}", json={"id": "10000", "key": key, "fields": fields or {}})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"errorMessages": ["Issue Does Not Exist"], "errors": {}})
        if callable(route):
            return route(request)
        status, kwargs = route
        return httpx.Response(status, **kwargs)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        if not path.startswith("/plugins/"):
            path = API + path.lstrip("/")
        return [call for call in self.calls if call.method == method and call.url.path == path]

    def methods(self) -> List[str]:
        return [call.method for call in self.calls]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


def _oauth_escape(value: str) -> str:
    return quote(value, safe="~")


def verify_oauth_signature(request: httpx.Request, private_key_pem: str) -> Dict[str, str]:
    """
    Rebuilds the RSA-SHA1 signature base string of a signed request, checks
    the signature with the public key and returns the OAuth header parameters.
    Raises cryptography.exceptions.InvalidSignature on a mismatch.
    """
    header = request.headers["Authorization"]
    assert header.startswith("OAuth ")
    oauth_params = {
        unquote(key): unquote(value)
        for key, value in re.findall(r'([\w]+)="([^"]*)"', header)
    }
    signature = base64.b64decode(oauth_params.pop("oauth_signature"))
    oauth_params.pop("realm", None)

    params = [(key, value) for key, value in oauth_params.items()]
    params.extend(request.url.params.multi_items())
    normalized = "&".join(
        f"{key}={value}" for key, value in sorted((_oauth_escape(k), _oauth_escape(v)) for k, v in params)
    )
    base_uri = f"{request.url.scheme}://{request.url.host}{request.url.path}"
    base_string = "&".join([request.method, _oauth_escape(base_uri), _oauth_escape(normalized)])

    public_key = serialization.load_pem_private_key(private_key_pem.encode(), password=None).public_key()
    public_key.verify(signature, base_string.encode(), padding.PKCS1v15(), hashes.SHA1())
    return oauth_params


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def db() -> Session:
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def factory(db, fake_jira) -> JiraServiceFactory:
    return JiraServiceFactory(db, transport=fake_jira.transport, callback_url=CALLBACK_URL)


@pytest.fixture
def ticket_system(db, private_key_pem) -> TicketSystem:
    ticket_system = TicketSystem(
        name="Jira",
        type="JIRA",
        book_time=True,
        url=JIRA_URL,
        ticket_url=JIRA_URL + "/browse/%s",
        login="timetracker",
        oauth_consumer_key="timetracker",
        private_key=private_key_pem,
    )
    db.add(ticket_system)
    db.commit()
    return ticket_system


@pytest.fixture
def user(db) -> User:
    user = User(username="developer", display_name="Dev Eloper")
    db.add(user)
    db.commit()
    return user


def authorize(db: Session, user: User, ticket_system: TicketSystem, token: str = "access-token", secret: str = "token-secret") -> UserTicketSystem:
    user_ticket_system = UserTicketSystem(
        user_id=user.id,
        ticket_system_id=ticket_system.id,
        access_token=encrypt_token(token),
        token_secret=encrypt_token(secret),
        avoid_connection=False,
    )
    db.add(user_ticket_system)
    db.commit()
    return user_ticket_system


@pytest.fixture
def authorized_user(db, user, ticket_system) -> User:
    authorize(db, user, ticket_system)
    return user


@pytest.fixture
def customer(db) -> Customer:
    customer = Customer(name="ACME")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def activity(db) -> Activity:
    activity = Activity(name="Development")
    db.add(activity)
    db.commit()
    return activity


@pytest.fixture
def project(db, ticket_system, customer, user) -> Project:
    project = Project(
        name="Website",
        customer_id=customer.id,
        ticket_system_id=ticket_system.id,
        project_lead_id=user.id,
        jira_id="SA",
    )
    db.add(project)
    db.commit()
    return project


@pytest.fixture
def make_entry(db, user, project, customer, activity) -> Callable[..., Entry]:
    def _make_entry(**overrides) -> Entry:
        values = dict(
            ticket="SA-1",
            description="Fixed header",
            day=date(2024, 1, 15),
            start=time(9, 30),
            end=time(10, 30),
            duration=60,
            user_id=user.id,
            project_id=project.id,
            customer_id=customer.id,
            activity_id=activity.id,
        )
        values.update(overrides)
        entry = Entry(**values)
        db.add(entry)
        db.commit()
        return entry

    return _make_entry


@pytest.fixture
def client(db, factory) -> TestClient:
    from timetracker.api.deps import get_jira_factory
    from timetracker.database import get_db
    from timetracker.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_jira_factory] = lambda: factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
