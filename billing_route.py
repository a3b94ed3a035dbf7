# billing_route.py
import logging
import time
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlmodel import Session, select

from audit import record_audit
from auth import get_current_caller
from currency import EXCHANGE_RATES, normalize_code
from db import get_session
from errors import InvalidRequestError, NotFoundError
from exports import invoice_pdf
from ledger import CENTS, display_status, invoice_snapshot, recompute_from_scratch
from models import (
  Client, ClientCreate, ClientRead, ClientUpdate,
  Invoice, InvoiceCreate, InvoiceRead, InvoiceStatusUpdate,
  LineItem, OVERDUE, User,
)
from policy import Caller, ensure_can_view, require_admin, scope_invoices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


def _get_invoice(session: Session, invoice_id: int) -> Invoice:
  inv = session.get(Invoice, invoice_id)
  if not inv:
    raise NotFoundError("invoice", invoice_id)
  return inv


# clients

@router.get("/clients", response_model=List[ClientRead])
def list_clients(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  stmt = select(Client).order_by(Client.id)
  if not caller.is_admin:
    if caller.client_id is None:
      return []
    stmt = stmt.where(Client.id == caller.client_id)
  return session.exec(stmt).all()

@router.post("/clients", response_model=ClientRead)
def create_client(
  data: ClientCreate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  c = Client(**data.model_dump())
  session.add(c)
  session.flush()
  record_audit(session, "create", "client", c.id, caller.id, data.model_dump())
  session.commit()
  session.refresh(c)
  return c

@router.put("/clients/{client_id}", response_model=ClientRead)
def update_client(
  client_id: int,
  data: ClientUpdate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  c = session.get(Client, client_id)
  if not c:
    raise NotFoundError("client", client_id)
  changes = data.model_dump(exclude_unset=True)
  c.sqlmodel_update(changes)
  session.add(c)
  record_audit(session, "update", "client", client_id, caller.id, changes)
  session.commit()
  session.refresh(c)
  return c

@router.delete("/clients/{client_id}")
def delete_client(
  client_id: int,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  c = session.get(Client, client_id)
  if not c:
    raise NotFoundError("client", client_id)

  # invoices, line items and payments go with the client
  invoice_count = len(c.invoices)
  for user in session.exec(select(User).where(User.client_id == client_id)).all():
    user.client_id = None
    session.add(user)
  session.delete(c)
  record_audit(session, "delete", "client", client_id, caller.id, {"invoices": invoice_count})
  session.commit()
  logger.info("Deleted client %s with %d invoices", client_id, invoice_count)
  return {"message": "Client deleted"}


# invoices

@router.get("/invoices", response_model=List[InvoiceRead])
def list_invoices(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  rows = session.exec(scope_invoices(select(Invoice), caller).order_by(Invoice.issue_date.desc(), Invoice.id.desc())).all()
  return [invoice_snapshot(r) for r in rows]

@router.get("/invoices/overdue", response_model=List[InvoiceRead])
def list_overdue_invoices(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  today = date.today()
  rows = session.exec(scope_invoices(select(Invoice), caller).where(Invoice.due_date < today).order_by(Invoice.due_date)).all()
  return [invoice_snapshot(r, today) for r in rows if display_status(r, today) == OVERDUE]

@router.post("/invoices", response_model=InvoiceRead)
def create_invoice(
  data: InvoiceCreate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  if not session.get(Client, data.client_id):
    raise NotFoundError("client", data.client_id)

  invoice_no = (data.invoice_no or "").strip() or f"INV-{int(time.time() * 1000)}"
  if session.exec(select(Invoice).where(Invoice.invoice_no == invoice_no)).first():
    raise InvalidRequestError(f"Invoice number {invoice_no} already exists")

  for item in data.items:
    if item.quantity <= 0 or item.unit_price < 0:
      raise InvalidRequestError(f"Invalid line item: {item.name}")

  currency = normalize_code(data.currency)
  exchange_rate = data.exchange_rate
  if exchange_rate is None and currency != "USD":
    exchange_rate = EXCHANGE_RATES[currency]

  # exact sum of the line products, rounded to cents once
  total = sum((item.quantity * item.unit_price for item in data.items), Decimal("0")).quantize(CENTS, rounding=ROUND_HALF_UP)
  inv = Invoice(
    **data.model_dump(exclude={"items", "invoice_no", "currency", "exchange_rate"}),
    invoice_no=invoice_no,
    currency=currency,
    exchange_rate=exchange_rate,
    total=total,
  )
  inv.items = [LineItem(**item.model_dump()) for item in data.items]
  session.add(inv)
  session.flush()
  record_audit(session, "create", "invoice", inv.id, caller.id, {"invoice_no": invoice_no, "total": total})
  session.commit()
  session.refresh(inv)
  logger.info("Created invoice %s for client %s, total %s %s", invoice_no, inv.client_id, total, currency)
  return invoice_snapshot(inv)

@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(invoice_id: int, caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  inv = _get_invoice(session, invoice_id)
  ensure_can_view(caller, inv)
  return invoice_snapshot(inv)

@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceRead)
def override_status(
  invoice_id: int,
  data: InvoiceStatusUpdate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  inv = _get_invoice(session, invoice_id)
  before = inv.status
  inv.status = data.status
  session.add(inv)
  record_audit(session, "status_override", "invoice", invoice_id, caller.id, {"status": [before.value, data.status.value]})
  session.commit()
  session.refresh(inv)
  logger.info("Status of invoice %s overridden %s -> %s", inv.invoice_no, before.value, data.status.value)
  return invoice_snapshot(inv)

@router.post("/invoices/{invoice_id}/recompute", response_model=InvoiceRead)
def recompute_invoice(
  invoice_id: int,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  return invoice_snapshot(recompute_from_scratch(session, invoice_id, caller.id))

@router.get("/invoices/{invoice_id}/pdf")
def get_invoice_pdf(invoice_id: int, caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  inv = _get_invoice(session, invoice_id)
  ensure_can_view(caller, inv)
  return Response(
    content=invoice_pdf(inv),
    media_type="application/pdf",
    headers={"Content-Disposition": f'attachment; filename="invoice-{inv.invoice_no}.pdf"'},
  )


@router.post("/seed")
def seed_if_empty(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  require_admin(caller)
  # Seed only if DB is empty
  any_invoice = session.exec(select(Invoice)).first()
  if any_invoice:
    return {"ok": True, "seeded": False}

  today = date.today()
  apex = Client(name="Apex Retail Pvt Ltd", contact="billing@apexretail.example", address="12 Market Road")
  bluesky = Client(name="BlueSky Logistics", contact="ap@bluesky.example", address="4 Harbour Lane")
  apex.invoices = [
    Invoice(
      invoice_no="INV-10428", issue_date=today - timedelta(days=20), due_date=today + timedelta(days=10),
      total=Decimal("489.00"),
      items=[LineItem(name="Consulting", quantity=Decimal("3"), unit_price=Decimal("163.00"))],
    ),
  ]
  bluesky.invoices = [
    Invoice(
      invoice_no="INV-10429", issue_date=today - timedelta(days=45), due_date=today - timedelta(days=15),
      total=Decimal("1250.00"), currency="EUR", exchange_rate=EXCHANGE_RATES["EUR"],
      items=[LineItem(name="Freight audit", quantity=Decimal("5"), unit_price=Decimal("250.00"))],
    ),
  ]
  session.add_all([apex, bluesky])
  record_audit(session, "seed", "invoice", None, caller.id, {"invoices": 2})
  session.commit()
  return {"ok": True, "seeded": True}
