import itertools
import os

# must be set before db/auth are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["BCRYPT_ROUNDS"] = "4"  # Fast for tests

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from auth import create_access_token, hash_password
from db import get_session
from main import app
from models import Client, Invoice, LineItem, User, UserRole
from policy import Caller


@pytest.fixture
def engine():
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )
  SQLModel.metadata.create_all(engine)
  yield engine
  SQLModel.metadata.drop_all(engine)
  engine.dispose()


@pytest.fixture
def session(engine):
  with Session(engine) as session:
    yield session


@pytest.fixture
def client(session):
  """Create a test client sharing the test session."""
  def override_get_session():
    yield session

  app.dependency_overrides[get_session] = override_get_session
  yield TestClient(app)
  app.dependency_overrides.clear()


@pytest.fixture
def make_client(session):
  def _make(name="Acme Retail", contact="ap@acme.example"):
    c = Client(name=name, contact=contact, address="1 Main Street")
    session.add(c)
    session.commit()
    session.refresh(c)
    return c
  return _make


@pytest.fixture
def make_invoice(session):
  counter = itertools.count(1)

  def _make(owner, total="1000.00", due_date=None, invoice_no=None):
    total = Decimal(total)
    inv = Invoice(
      invoice_no=invoice_no or f"INV-T{next(counter):04d}",
      client_id=owner.id,
      issue_date=date.today() - timedelta(days=5),
      due_date=due_date or date.today() + timedelta(days=25),
      total=total,
      items=[LineItem(name="Services", quantity=Decimal("1"), unit_price=total)],
    )
    session.add(inv)
    session.commit()
    session.refresh(inv)
    return inv
  return _make


@pytest.fixture
def make_user(session):
  def _make(username, role=UserRole.client, client_id=None, password="password123"):
    user = User(
      username=username,
      password_hash=hash_password(password),
      role=role,
      client_id=client_id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user
  return _make


@pytest.fixture
def headers_for():
  def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}
  return _headers


@pytest.fixture
def admin_user(make_user):
  return make_user("admin", role=UserRole.admin)


@pytest.fixture
def admin_headers(admin_user, headers_for):
  return headers_for(admin_user)


@pytest.fixture
def admin_caller():
  return Caller(id=1, username="admin", role=UserRole.admin)
