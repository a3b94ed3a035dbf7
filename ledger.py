# ledger.py
"""Invoice payment ledger.

Keeps ``invoice.paid_amount`` and ``invoice.status`` in step with the payment
rows that reference the invoice. These functions are the only writers of
``paid_amount``.

Each operation locks the invoice row, re-sums its payments inside the same
transaction and commits the payment change, the invoice update and the audit
entry together.
"""
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from audit import record_audit
from errors import InvalidRequestError, NotFoundError
from models import (
  OVERDUE,
  Invoice,
  InvoiceRead,
  InvoiceStatus,
  LineItemRead,
  Payment,
  PaymentMethod,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
  try:
    return Decimal(str(value)).quantize(CENTS)
  except (InvalidOperation, ValueError):
    raise InvalidRequestError(f"Invalid amount: {value!r}")


def derive_status(paid: Decimal, total: Decimal) -> InvoiceStatus:
  if paid <= 0:
    return InvoiceStatus.unpaid
  if paid < total:
    return InvoiceStatus.partially_paid
  return InvoiceStatus.paid


def display_status(invoice: Invoice, today: Optional[date] = None) -> str:
  today = today or date.today()
  if invoice.status != InvoiceStatus.paid and invoice.due_date < today:
    return OVERDUE
  return invoice.status.value


def invoice_snapshot(invoice: Invoice, today: Optional[date] = None) -> InvoiceRead:
  return InvoiceRead.model_validate(invoice, update={
    "balance": to_money(invoice.total) - to_money(invoice.paid_amount),
    "display_status": display_status(invoice, today),
    "items": [LineItemRead.model_validate(item) for item in invoice.items],
  })


def _lock_invoice(session: Session, invoice_id: int) -> Invoice:
  invoice = session.exec(
    select(Invoice).where(Invoice.id == invoice_id).with_for_update()
  ).first()
  if not invoice:
    raise NotFoundError("invoice", invoice_id)
  return invoice


def _payments_total(session: Session, invoice_id: int) -> Decimal:
  rows = session.exec(select(Payment.amount).where(Payment.invoice_id == invoice_id)).all()
  return sum((to_money(amount) for amount in rows), ZERO)


def _apply(invoice: Invoice, paid: Decimal) -> None:
  invoice.paid_amount = paid
  invoice.status = derive_status(paid, to_money(invoice.total))


def _commit(session: Session, what: str) -> None:
  try:
    session.commit()
  except SQLAlchemyError:
    session.rollback()
    logger.exception("Ledger commit failed during %s", what)
    raise


def record_payment(
  session: Session,
  invoice_id: int,
  amount,
  method: PaymentMethod,
  note: Optional[str] = None,
  actor_id: Optional[int] = None,
) -> Tuple[Payment, Invoice]:
  amount = to_money(amount)
  if amount <= 0:
    raise InvalidRequestError("Payment amount must be greater than zero")
  try:
    method = PaymentMethod(method)
  except ValueError:
    raise InvalidRequestError(f"Unknown payment method: {method}")

  invoice = _lock_invoice(session, invoice_id)
  total = to_money(invoice.total)
  new_paid = _payments_total(session, invoice_id) + amount
  if new_paid > total:
    logger.warning(
      "Rejected payment of %s on invoice %s: paid would be %s of %s",
      amount, invoice.invoice_no, new_paid, total,
    )
    session.rollback()  # releases the row lock
    raise InvalidRequestError("Payment amount exceeds remaining balance")

  payment = Payment(invoice_id=invoice_id, amount=amount, method=method, note=note)
  session.add(payment)
  _apply(invoice, new_paid)
  session.add(invoice)
  session.flush()

  record_audit(
    session, "create", "payment", payment.id, actor_id,
    {"invoice_id": invoice_id, "amount": amount, "method": method.value},
  )
  _commit(session, "record_payment")
  session.refresh(payment)
  session.refresh(invoice)

  logger.info(
    "Recorded payment %s of %s on invoice %s (paid %s/%s, %s)",
    payment.id, amount, invoice.invoice_no, invoice.paid_amount, invoice.total, invoice.status.value,
  )
  return payment, invoice


def delete_payment(session: Session, payment_id: int, actor_id: Optional[int] = None) -> Invoice:
  payment = session.get(Payment, payment_id)
  if not payment:
    raise NotFoundError("payment", payment_id)

  invoice_id = payment.invoice_id
  amount = payment.amount
  invoice = _lock_invoice(session, invoice_id)

  session.delete(payment)
  session.flush()
  _apply(invoice, _payments_total(session, invoice_id))
  session.add(invoice)

  record_audit(
    session, "delete", "payment", payment_id, actor_id,
    {"invoice_id": invoice_id, "amount": amount},
  )
  _commit(session, "delete_payment")
  session.refresh(invoice)

  logger.info(
    "Deleted payment %s from invoice %s (paid %s/%s, %s)",
    payment_id, invoice.invoice_no, invoice.paid_amount, invoice.total, invoice.status.value,
  )
  return invoice


def recompute_from_scratch(session: Session, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
  invoice = _lock_invoice(session, invoice_id)
  before_paid, before_status = to_money(invoice.paid_amount), invoice.status

  _apply(invoice, _payments_total(session, invoice_id))
  drifted = invoice.paid_amount != before_paid or invoice.status != before_status
  if drifted:
    logger.warning(
      "Repaired ledger drift on invoice %s: paid %s -> %s, status %s -> %s",
      invoice.invoice_no, before_paid, invoice.paid_amount, before_status.value, invoice.status.value,
    )
    session.add(invoice)
    record_audit(
      session, "recompute", "invoice", invoice_id, actor_id,
      {
        "paid_amount": [before_paid, invoice.paid_amount],
        "status": [before_status.value, invoice.status.value],
      },
    )
  _commit(session, "recompute_from_scratch")
  session.refresh(invoice)
  return invoice


def list_payments(session: Session, invoice_id: int) -> List[Payment]:
  if not session.get(Invoice, invoice_id):
    raise NotFoundError("invoice", invoice_id)
  return list(session.exec(
    select(Payment)
    .where(Payment.invoice_id == invoice_id)
    .order_by(Payment.paid_date.desc(), Payment.id.desc())
  ).all())
