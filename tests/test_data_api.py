"""Tests for exports, import templates, client import, the audit trail and the dashboard."""

import csv
import io
from datetime import date, timedelta
from decimal import Decimal

from exports import clients_csv, invoices_csv, parse_clients_csv


def _rows(text):
  return list(csv.reader(io.StringIO(text)))


class TestCsvRendering:
  def test_invoices_csv(self, session, make_client, make_invoice):
    inv = make_invoice(make_client("Acme, Inc."), total="250.00")
    session.refresh(inv)

    text = invoices_csv([inv])
    assert text.splitlines()[0].startswith('"Invoice Number","Client Name"')
    rows = _rows(text)
    assert rows[1][0] == inv.invoice_no
    assert rows[1][1] == "Acme, Inc."
    assert rows[1][5] == "unpaid"
    assert Decimal(rows[1][7]) == Decimal("250")
    assert rows[1][9] == "Services"

  def test_clients_csv(self, session, make_client, make_invoice):
    owner = make_client()
    make_invoice(owner, total="100.00")
    make_invoice(owner, total="50.00")
    session.refresh(owner)

    rows = _rows(clients_csv([owner]))
    assert rows[0][1] == "Name"
    assert rows[1][4] == "2"
    assert Decimal(rows[1][5]) == Decimal("150")

  def test_parse_clients_csv(self):
    text = '"Client ID","Name","Contact","Address"\n"1","Orchid Education","ap@orchid.example",""\n"2","","x@y.example","Nowhere"\n'
    clients, errors = parse_clients_csv(text)
    assert [c.name for c in clients] == ["Orchid Education"]
    assert clients[0].address is None
    assert errors == ["Line 3: missing Name"]


class TestExportApi:
  def test_invoice_export(self, client, admin_headers, make_client, make_invoice):
    make_invoice(make_client())
    r = client.get("/api/data/invoices/csv", headers=admin_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="invoices.csv"' in r.headers["content-disposition"]
    assert len(_rows(r.text)) == 2

  def test_export_admin_only(self, client, make_user, headers_for):
    user = make_user("viewer")
    assert client.get("/api/data/clients/csv", headers=headers_for(user)).status_code == 403

  def test_import_round_trip(self, client, admin_headers, make_client):
    make_client("Exported Co")
    exported = client.get("/api/data/clients/csv", headers=admin_headers).text

    r = client.post("/api/data/clients/import", json={"csv_data": exported}, headers=admin_headers)
    assert r.json() == {"success": True, "imported": 1, "errors": []}
    names = [c["name"] for c in client.get("/api/clients", headers=admin_headers).json()]
    assert names == ["Exported Co", "Exported Co"]


class TestTemplates:
  def test_clients_template_imports(self, client, admin_headers):
    r = client.get("/api/data/template/clients", headers=admin_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="clients-template.csv"' in r.headers["content-disposition"]
    assert _rows(r.text)[0] == ["ID (leave empty)", "Name", "Contact", "Address"]

    r = client.post("/api/data/clients/import", json={"csv_data": r.text}, headers=admin_headers)
    assert r.json()["imported"] == 3

  def test_invoices_template(self, client, make_user, headers_for):
    user = make_user("viewer")
    r = client.get("/api/data/template/invoices", headers=headers_for(user))
    assert r.status_code == 200
    rows = _rows(r.text)
    assert rows[0][1] == "Client Name"
    assert len(rows) == 4
    assert all(len(row) == 8 for row in rows)

  def test_unknown_type(self, client, admin_headers):
    r = client.get("/api/data/template/payments", headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid template type: payments"


class TestAuditTrail:
  def test_mutations_are_logged(self, client, admin_headers, admin_user, make_client, make_invoice):
    inv = make_invoice(make_client(), total="100.00")
    payment = client.post(
      "/api/payments", json={"invoice_id": inv.id, "amount": "10", "method": "cash"}, headers=admin_headers
    ).json()["payment"]
    client.delete(f"/api/payments/{payment['id']}", headers=admin_headers)

    r = client.get("/api/audit", params={"entity_type": "payment"}, headers=admin_headers)
    assert r.status_code == 200
    logs = r.json()["logs"]
    assert [log["action"] for log in logs] == ["delete", "create"]
    assert all(log["user_id"] == admin_user.id for log in logs)
    assert r.json()["pagination"] == {"page": 1, "limit": 50, "total": 2, "pages": 1}

  def test_pagination_and_action_filter(self, client, admin_headers):
    for n in range(3):
      client.post("/api/clients", json={"name": f"Client {n}"}, headers=admin_headers)

    r = client.get("/api/audit", params={"action": "create", "limit": 2, "page": 2}, headers=admin_headers)
    assert len(r.json()["logs"]) == 1
    assert r.json()["pagination"]["pages"] == 2

  def test_admin_only(self, client, make_user, headers_for):
    user = make_user("viewer")
    assert client.get("/api/audit", headers=headers_for(user)).status_code == 403


class TestDashboard:
  def test_stats(self, client, admin_headers, make_client, make_invoice):
    owner = make_client()
    make_invoice(owner, total="100.00", due_date=date.today() - timedelta(days=1))
    paid = make_invoice(owner, total="50.00")
    client.post("/api/payments", json={"invoice_id": paid.id, "amount": "50", "method": "card"}, headers=admin_headers)

    stats = client.get("/api/dashboard/stats", headers=admin_headers).json()
    assert stats["total_clients"] == 1
    assert stats["total_invoices"] == 2
    assert stats["active_invoices"] == 1
    assert stats["overdue_invoices"] == 1
    assert Decimal(str(stats["outstanding_balance"])) == Decimal("100")
    assert Decimal(str(stats["collected"])) == Decimal("50")
    assert Decimal(str(stats["monthly_revenue"])) == Decimal("50")
    assert stats["growth_rate"] == 100

  def test_scoped_for_client(self, client, admin_headers, make_client, make_invoice, make_user, headers_for):
    mine, theirs = make_client("Mine"), make_client("Theirs")
    make_invoice(mine)
    make_invoice(theirs)
    make_invoice(theirs)
    user = make_user("viewer", client_id=mine.id)

    stats = client.get("/api/dashboard/stats", headers=headers_for(user)).json()
    assert stats["total_clients"] == 1
    assert stats["total_invoices"] == 1


class TestRecentActivity:
  def test_admin_feed(self, client, admin_headers, make_client, make_invoice):
    owner = make_client("Acme Retail")
    inv = make_invoice(owner, total="80.00")
    client.post("/api/payments", json={"invoice_id": inv.id, "amount": "30", "method": "cash"}, headers=admin_headers)

    r = client.get("/api/dashboard/recent-activity", headers=admin_headers)
    assert r.status_code == 200
    feed = r.json()
    assert {a["id"] for a in feed} >= {f"invoice-{inv.id}", f"client-{owner.id}"}
    # issued five days ago, so it sorts below today's payment and client
    assert feed[-1]["id"] == f"invoice-{inv.id}"
    assert Decimal(str(feed[-1]["amount"])) == Decimal("80")
    payments = [a for a in feed if a["type"] == "payment"]
    assert len(payments) == 1
    assert Decimal(str(payments[0]["amount"])) == Decimal("30")

  def test_limit(self, client, admin_headers, make_client, make_invoice):
    owner = make_client()
    for _ in range(4):
      make_invoice(owner)
    r = client.get("/api/dashboard/recent-activity", params={"limit": 2}, headers=admin_headers)
    assert len(r.json()) == 2

  def test_scoped_for_client(self, client, admin_headers, make_client, make_invoice, make_user, headers_for):
    mine, theirs = make_client("Mine"), make_client("Theirs")
    own = make_invoice(mine, total="40.00")
    other = make_invoice(theirs, total="60.00")
    client.post("/api/payments", json={"invoice_id": other.id, "amount": "10", "method": "card"}, headers=admin_headers)
    user = make_user("viewer", client_id=mine.id)

    feed = client.get("/api/dashboard/recent-activity", headers=headers_for(user)).json()
    assert [a["id"] for a in feed] == [f"invoice-{own.id}"]

  def test_unlinked_client_sees_nothing(self, client, make_client, make_invoice, make_user, headers_for):
    make_invoice(make_client())
    user = make_user("drifter")
    assert client.get("/api/dashboard/recent-activity", headers=headers_for(user)).json() == []
