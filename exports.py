# exports.py
"""CSV and PDF renderings of the invoice book."""
import csv
import io
import logging
from datetime import datetime
from typing import Iterable, List, Tuple

from fpdf import FPDF

from currency import CURRENCY_INFO
from errors import InvalidRequestError
from ledger import display_status
from models import Client, ClientCreate, Invoice

logger = logging.getLogger(__name__)

INVOICE_HEADERS = [
  "Invoice Number",
  "Client Name",
  "Client Contact",
  "Issue Date",
  "Due Date",
  "Status",
  "Currency",
  "Total Amount",
  "Paid Amount",
  "Item Names",
  "Item Quantities",
  "Item Prices",
]

CLIENT_HEADERS = [
  "Client ID",
  "Name",
  "Contact",
  "Address",
  "Total Invoices",
  "Total Amount",
  "Created Date",
]


def _write(headers: List[str], rows: Iterable[List[str]]) -> str:
  buf = io.StringIO()
  writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
  writer.writerow(headers)
  writer.writerows(rows)
  return buf.getvalue()


def invoices_csv(invoices: Iterable[Invoice]) -> str:
  rows = []
  for inv in invoices:
    rows.append([
      inv.invoice_no,
      inv.client.name if inv.client else "",
      (inv.client.contact or "") if inv.client else "",
      inv.issue_date.isoformat(),
      inv.due_date.isoformat(),
      display_status(inv),
      inv.currency,
      str(inv.total),
      str(inv.paid_amount),
      "; ".join(item.name for item in inv.items),
      "; ".join(str(item.quantity) for item in inv.items),
      "; ".join(str(item.unit_price) for item in inv.items),
    ])
  return _write(INVOICE_HEADERS, rows)


def clients_csv(clients: Iterable[Client]) -> str:
  rows = []
  for c in clients:
    rows.append([
      str(c.id),
      c.name,
      c.contact or "",
      c.address or "",
      str(len(c.invoices)),
      str(sum((inv.total for inv in c.invoices), 0)),
      c.created_at.date().isoformat(),
    ])
  return _write(CLIENT_HEADERS, rows)


# blank import sheets with a few sample rows
TEMPLATES = {
  "clients": (
    ["ID (leave empty)", "Name", "Contact", "Address"],
    [
      ["", "John Doe", "john@example.com", "123 Main St"],
      ["", "Jane Smith", "jane@example.com", "456 Oak Ave"],
      ["", "Bob Johnson", "bob@example.com", "789 Pine Rd"],
    ],
  ),
  "invoices": (
    [
      "Invoice Number (auto-generated)",
      "Client Name",
      "Issue Date (YYYY-MM-DD)",
      "Due Date (YYYY-MM-DD)",
      "Item Name",
      "Quantity",
      "Unit Price",
      "Currency",
    ],
    [
      ["", "John Doe", "2025-01-01", "2025-01-31", "Consulting", "10", "100.00", "USD"],
      ["", "Jane Smith", "2025-01-02", "2025-02-01", "Design Work", "1", "500.00", "USD"],
      ["", "Bob Johnson", "2025-01-03", "2025-02-02", "Development", "20", "75.00", "EUR"],
    ],
  ),
}


def csv_template(kind: str) -> str:
  if kind not in TEMPLATES:
    raise InvalidRequestError(f"Invalid template type: {kind}")
  headers, rows = TEMPLATES[kind]
  return _write(headers, rows)


def parse_clients_csv(text: str) -> Tuple[List[ClientCreate], List[str]]:
  """Parse rows shaped like the clients export back into ClientCreate records.

  Rows without a name are reported as errors and skipped.
  """
  clients, errors = [], []
  reader = csv.DictReader(io.StringIO(text.strip()))
  for line_no, row in enumerate(reader, start=2):
    name = (row.get("Name") or "").strip()
    if not name:
      errors.append(f"Line {line_no}: missing Name")
      continue
    clients.append(ClientCreate(
      name=name,
      contact=(row.get("Contact") or "").strip() or None,
      address=(row.get("Address") or "").strip() or None,
    ))
  return clients, errors


def _latin1(text: str) -> str:
  # core PDF fonts only cover latin-1
  return text.encode("latin-1", "replace").decode("latin-1")


def invoice_pdf(invoice: Invoice) -> bytes:
  symbol = CURRENCY_INFO.get(invoice.currency, {}).get("symbol", invoice.currency + " ")

  def money(value) -> str:
    return _latin1(f"{symbol}{value:,.2f}")

  pdf = FPDF()
  pdf.add_page()
  pdf.set_auto_page_break(auto=True, margin=15)

  pdf.set_font("Helvetica", "B", 20)
  pdf.cell(0, 10, _latin1(f"Invoice #{invoice.invoice_no}"), new_x="LMARGIN", new_y="NEXT", align="C")
  pdf.ln(4)

  pdf.set_font("Helvetica", "", 11)
  client = invoice.client
  pdf.cell(0, 6, _latin1(f"Client: {client.name if client else ''}"), new_x="LMARGIN", new_y="NEXT")
  if client and client.contact:
    pdf.cell(0, 6, _latin1(f"Contact: {client.contact}"), new_x="LMARGIN", new_y="NEXT")
  pdf.cell(0, 6, f"Date: {invoice.issue_date.isoformat()}", new_x="LMARGIN", new_y="NEXT")
  pdf.cell(0, 6, f"Due Date: {invoice.due_date.isoformat()}", new_x="LMARGIN", new_y="NEXT")
  pdf.cell(0, 6, f"Status: {display_status(invoice).replace('_', ' ').upper()}", new_x="LMARGIN", new_y="NEXT")
  pdf.ln(4)

  pdf.set_font("Helvetica", "B", 10)
  pdf.cell(90, 7, "Item", border="B")
  pdf.cell(25, 7, "Qty", border="B", align="C")
  pdf.cell(35, 7, "Unit Price", border="B", align="R")
  pdf.cell(40, 7, "Amount", border="B", align="R", new_x="LMARGIN", new_y="NEXT")

  pdf.set_font("Helvetica", "", 10)
  for item in invoice.items:
    pdf.cell(90, 6, _latin1(item.name))
    pdf.cell(25, 6, f"{item.quantity:g}", align="C")
    pdf.cell(35, 6, money(item.unit_price), align="R")
    pdf.cell(40, 6, money(item.quantity * item.unit_price), align="R", new_x="LMARGIN", new_y="NEXT")
  pdf.ln(4)

  pdf.set_font("Helvetica", "B", 11)
  pdf.cell(150, 7, "Total:", align="R")
  pdf.cell(40, 7, money(invoice.total), align="R", new_x="LMARGIN", new_y="NEXT")
  pdf.set_font("Helvetica", "", 11)
  pdf.cell(150, 7, "Paid:", align="R")
  pdf.cell(40, 7, money(invoice.paid_amount), align="R", new_x="LMARGIN", new_y="NEXT")
  pdf.cell(150, 7, "Balance Due:", align="R")
  pdf.cell(40, 7, money(invoice.total - invoice.paid_amount), align="R", new_x="LMARGIN", new_y="NEXT")

  pdf.ln(8)
  pdf.set_font("Helvetica", "I", 9)
  generated = datetime.now().strftime("%Y-%m-%d %H:%M")
  pdf.cell(0, 5, f"Generated {generated}", new_x="LMARGIN", new_y="NEXT", align="C")

  logger.debug("Rendered PDF for invoice %s", invoice.invoice_no)
  return bytes(pdf.output())
