# data_route.py
import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import Session, select

import currency
from audit import record_audit
from auth import get_current_caller
from db import get_session
from exports import clients_csv, csv_template, invoices_csv, parse_clients_csv
from ledger import ZERO, display_status, to_money
from models import AuditLog, Client, Invoice, InvoiceStatus, OVERDUE, Payment
from policy import Caller, require_admin, scope_invoices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["data"])


class ConvertRequest(BaseModel):
  amount: Decimal
  from_currency: str
  to_currency: str


class ImportRequest(BaseModel):
  csv_data: str


def _csv_response(body: str, filename: str) -> Response:
  return Response(
    content=body,
    media_type="text/csv",
    headers={"Content-Disposition": f'attachment; filename="{filename}"'},
  )


# currency

@router.get("/currency/currencies")
def get_currencies(caller: Caller = Depends(get_current_caller)):
  return currency.list_currencies()

@router.get("/currency/exchange-rate/{from_currency}/{to_currency}")
def get_exchange_rate(from_currency: str, to_currency: str, caller: Caller = Depends(get_current_caller)):
  return {
    "from": currency.normalize_code(from_currency),
    "to": currency.normalize_code(to_currency),
    "rate": currency.exchange_rate(from_currency, to_currency),
    "timestamp": datetime.utcnow().isoformat(),
  }

@router.post("/currency/convert")
def convert_amount(req: ConvertRequest, caller: Caller = Depends(get_current_caller)):
  return currency.convert(req.amount, req.from_currency, req.to_currency)

@router.post("/currency/refresh")
async def refresh_exchange_rates(caller: Caller = Depends(get_current_caller)):
  require_admin(caller)
  updated = await currency.refresh_rates()
  return {"ok": True, "updated": updated}


# exports

@router.get("/data/invoices/csv")
def export_invoices(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  require_admin(caller)
  rows = session.exec(select(Invoice).order_by(Invoice.id)).all()
  return _csv_response(invoices_csv(rows), "invoices.csv")

@router.get("/data/clients/csv")
def export_clients(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  require_admin(caller)
  rows = session.exec(select(Client).order_by(Client.id)).all()
  return _csv_response(clients_csv(rows), "clients.csv")

@router.post("/data/clients/import")
def import_clients(
  req: ImportRequest,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  parsed, errors = parse_clients_csv(req.csv_data)
  created = [Client(**c.model_dump()) for c in parsed]
  session.add_all(created)
  session.flush()
  for c in created:
    record_audit(session, "import", "client", c.id, caller.id, {"name": c.name})
  session.commit()
  logger.info("Imported %d clients, %d rows rejected", len(created), len(errors))
  return {"success": True, "imported": len(created), "errors": errors}

@router.get("/data/template/{kind}")
def get_template(kind: str, caller: Caller = Depends(get_current_caller)):
  return _csv_response(csv_template(kind), f"{kind}-template.csv")


# audit trail

@router.get("/audit")
def list_audit_logs(
  page: int = Query(1, ge=1),
  limit: int = Query(50, ge=1, le=500),
  action: Optional[str] = None,
  entity_type: Optional[str] = None,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  filters = []
  if action:
    filters.append(AuditLog.action == action)
  if entity_type:
    filters.append(AuditLog.entity_type == entity_type)

  logs = session.exec(
    select(AuditLog).where(*filters)
    .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    .offset((page - 1) * limit).limit(limit)
  ).all()
  total = session.exec(select(func.count()).select_from(AuditLog).where(*filters)).one()
  return {
    "logs": logs,
    "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
  }


# dashboard

def _month_start(d: date, back: int = 0) -> date:
  year, month = d.year, d.month - back
  while month <= 0:
    month += 12
    year -= 1
  return date(year, month, 1)

@router.get("/dashboard/stats")
def dashboard_stats(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  today = date.today()
  invoices: List[Invoice] = session.exec(scope_invoices(select(Invoice), caller)).all()
  ids = [inv.id for inv in invoices]

  this_month = _month_start(today)
  last_month = _month_start(today, 1)
  monthly, previous = ZERO, ZERO
  if ids:
    payments = session.exec(
      select(Payment).where(Payment.invoice_id.in_(ids), Payment.paid_date >= datetime.combine(last_month, datetime.min.time()))
    ).all()
    for p in payments:
      if p.paid_date.date() >= this_month:
        monthly += to_money(p.amount)
      else:
        previous += to_money(p.amount)

  growth = 0
  if previous > 0:
    growth = round((monthly - previous) / previous * 100)
  elif monthly > 0:
    growth = 100

  if caller.is_admin:
    total_clients = session.exec(select(func.count()).select_from(Client)).one()
  else:
    total_clients = 1 if caller.client_id is not None else 0

  return {
    "total_clients": total_clients,
    "total_invoices": len(invoices),
    "active_invoices": sum(1 for inv in invoices if inv.status != InvoiceStatus.paid),
    "overdue_invoices": sum(1 for inv in invoices if display_status(inv, today) == OVERDUE),
    "outstanding_balance": sum((to_money(inv.total) - to_money(inv.paid_amount) for inv in invoices), ZERO),
    "collected": sum((to_money(inv.paid_amount) for inv in invoices), ZERO),
    "monthly_revenue": monthly,
    "last_month_revenue": previous,
    "growth_rate": growth,
  }

@router.get("/dashboard/recent-activity")
def recent_activity(
  limit: int = Query(10, ge=1, le=50),
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  """Latest invoices and payments the caller can see, plus new clients for admins."""
  activity = []
  invoices = session.exec(
    scope_invoices(select(Invoice), caller).order_by(Invoice.issue_date.desc(), Invoice.id.desc()).limit(5)
  ).all()
  for inv in invoices:
    activity.append({
      "id": f"invoice-{inv.id}",
      "type": "invoice",
      "description": f"Invoice {inv.invoice_no} issued to {inv.client.name}",
      "date": datetime.combine(inv.issue_date, datetime.min.time()),
      "amount": to_money(inv.total),
    })

  rows = session.exec(
    scope_invoices(select(Payment, Invoice).join(Invoice, Payment.invoice_id == Invoice.id), caller)
    .order_by(Payment.paid_date.desc(), Payment.id.desc()).limit(5)
  ).all()
  for payment, inv in rows:
    activity.append({
      "id": f"payment-{payment.id}",
      "type": "payment",
      "description": f"Payment received on {inv.invoice_no}",
      "date": payment.paid_date,
      "amount": to_money(payment.amount),
    })

  if caller.is_admin:
    for c in session.exec(select(Client).order_by(Client.id.desc()).limit(3)).all():
      activity.append({
        "id": f"client-{c.id}",
        "type": "client",
        "description": f"New client {c.name} added",
        "date": c.created_at,
        "amount": None,
      })

  activity.sort(key=lambda a: a["date"], reverse=True)
  return activity[:limit]
