# payments_route.py
from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from auth import get_current_caller
from db import get_session
from errors import NotFoundError
from ledger import delete_payment, invoice_snapshot, list_payments, record_payment
from models import Invoice, PaymentCreate, PaymentRead, PaymentReceipt
from policy import Caller, ensure_can_view, require_admin

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("", response_model=PaymentReceipt)
def add_payment(
  data: PaymentCreate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  payment, invoice = record_payment(
    session, data.invoice_id, data.amount, data.method, data.note, actor_id=caller.id
  )
  return PaymentReceipt(payment=PaymentRead.model_validate(payment), invoice=invoice_snapshot(invoice))

@router.get("/invoice/{invoice_id}", response_model=List[PaymentRead])
def get_invoice_payments(
  invoice_id: int,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  inv = session.get(Invoice, invoice_id)
  if not inv:
    raise NotFoundError("invoice", invoice_id)
  ensure_can_view(caller, inv)
  return list_payments(session, invoice_id)

@router.delete("/{payment_id}")
def remove_payment(
  payment_id: int,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  invoice = delete_payment(session, payment_id, actor_id=caller.id)
  return {"message": "Payment deleted successfully", "invoice": invoice_snapshot(invoice)}
