# models.py
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlmodel import SQLModel, Field, Relationship


class InvoiceStatus(str, Enum):
  unpaid = "unpaid"
  partially_paid = "partially_paid"
  paid = "paid"


# display label only, never written to invoice.status
OVERDUE = "overdue"


class PaymentMethod(str, Enum):
  cash = "cash"
  card = "card"
  bank_transfer = "bank_transfer"
  check = "check"


class RecurrencePeriod(str, Enum):
  weekly = "weekly"
  monthly = "monthly"
  quarterly = "quarterly"
  yearly = "yearly"


class UserRole(str, Enum):
  admin = "admin"
  client = "client"


# clients

class ClientBase(SQLModel):
  name: str
  contact: Optional[str] = None
  address: Optional[str] = None

class Client(ClientBase, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  created_at: datetime = Field(default_factory=datetime.utcnow)

  invoices: List["Invoice"] = Relationship(
    back_populates="client",
    sa_relationship_kwargs={"cascade": "all, delete-orphan"},
  )

class ClientCreate(ClientBase):
  pass

class ClientUpdate(SQLModel):
  name: Optional[str] = None
  contact: Optional[str] = None
  address: Optional[str] = None

class ClientRead(ClientBase):
  id: int
  created_at: datetime


# users

class User(SQLModel, table=True):
  __tablename__ = "users"

  id: Optional[int] = Field(default=None, primary_key=True)
  username: str = Field(index=True, unique=True)
  email: Optional[str] = None
  password_hash: str
  role: UserRole = UserRole.client
  client_id: Optional[int] = Field(default=None, foreign_key="client.id")
  created_at: datetime = Field(default_factory=datetime.utcnow)

class UserRead(SQLModel):
  id: int
  username: str
  email: Optional[str] = None
  role: UserRole
  client_id: Optional[int] = None

class ProfileRead(UserRead):
  created_at: datetime


# line items

class LineItemBase(SQLModel):
  name: str
  quantity: Decimal = Field(max_digits=12, decimal_places=2)
  unit_price: Decimal = Field(max_digits=12, decimal_places=2)

class LineItem(LineItemBase, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  invoice_id: Optional[int] = Field(default=None, foreign_key="invoice.id", index=True)

  invoice: Optional["Invoice"] = Relationship(back_populates="items")

class LineItemRead(LineItemBase):
  id: int
  invoice_id: int


# invoices

class InvoiceBase(SQLModel):
  issue_date: date
  due_date: date
  currency: str = "USD"
  exchange_rate: Optional[float] = None
  is_recurring: bool = False
  recurrence_period: Optional[RecurrencePeriod] = None
  next_due_date: Optional[date] = None

class Invoice(InvoiceBase, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  invoice_no: str = Field(index=True, unique=True)  # INV-1718000000000
  client_id: int = Field(foreign_key="client.id", index=True)
  total: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
  paid_amount: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
  status: InvoiceStatus = InvoiceStatus.unpaid
  created_at: datetime = Field(default_factory=datetime.utcnow)

  client: Optional[Client] = Relationship(back_populates="invoices")
  items: List[LineItem] = Relationship(
    back_populates="invoice",
    sa_relationship_kwargs={"cascade": "all, delete-orphan"},
  )
  payments: List["Payment"] = Relationship(
    back_populates="invoice",
    sa_relationship_kwargs={"cascade": "all, delete-orphan"},
  )

class InvoiceCreate(InvoiceBase):
  client_id: int
  invoice_no: Optional[str] = None
  items: List[LineItemBase] = Field(default_factory=list)

class InvoiceStatusUpdate(SQLModel):
  status: InvoiceStatus

class InvoiceRead(InvoiceBase):
  id: int
  invoice_no: str
  client_id: int
  total: Decimal
  paid_amount: Decimal
  balance: Decimal
  status: InvoiceStatus
  display_status: str
  created_at: datetime
  items: List[LineItemRead] = Field(default_factory=list)


# payments

class PaymentBase(SQLModel):
  amount: Decimal = Field(max_digits=12, decimal_places=2)
  method: PaymentMethod
  note: Optional[str] = None

class Payment(PaymentBase, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  invoice_id: int = Field(foreign_key="invoice.id", index=True)
  paid_date: datetime = Field(default_factory=datetime.utcnow, index=True)

  invoice: Optional[Invoice] = Relationship(back_populates="payments")

class PaymentCreate(PaymentBase):
  invoice_id: int

class PaymentRead(PaymentBase):
  id: int
  invoice_id: int
  paid_date: datetime

class PaymentReceipt(SQLModel):
  payment: PaymentRead
  invoice: InvoiceRead


# audit trail

class AuditLog(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  action: str = Field(index=True)  # create|update|delete|status_override|recompute
  entity_type: str = Field(index=True)  # invoice|payment|client|user
  entity_id: Optional[int] = None
  user_id: Optional[int] = None
  changes: Optional[str] = None  # JSON
  timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)
