# policy.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import false

from errors import AccessDenied
from models import Invoice, UserRole


class Decision(str, Enum):
  allow = "allow"
  deny = "deny"


class Caller(BaseModel):
  id: Optional[int] = None
  username: str = ""
  role: UserRole
  client_id: Optional[int] = None

  @property
  def is_admin(self) -> bool:
    return self.role == UserRole.admin


def authorize(caller: Caller, invoice: Invoice) -> Decision:
  if caller.is_admin:
    return Decision.allow
  if caller.client_id is None:
    return Decision.deny
  if invoice.client_id == caller.client_id:
    return Decision.allow
  return Decision.deny


def ensure_can_view(caller: Caller, invoice: Invoice) -> None:
  if authorize(caller, invoice) is Decision.deny:
    raise AccessDenied("You do not have access to this invoice")


def require_admin(caller: Caller) -> None:
  # clients are read-only in every route
  if not caller.is_admin:
    raise AccessDenied("Admin role required")


def scope_invoices(statement, caller: Caller):
  """Narrow an invoice select to what the caller may see."""
  if caller.is_admin:
    return statement
  if caller.client_id is None:
    return statement.where(false())
  return statement.where(Invoice.client_id == caller.client_id)
