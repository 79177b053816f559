# tests/test_admin.py
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from coursepay.db import SessionLocal
from coursepay.errors import NotFoundError
from coursepay.models import LedgerTransaction, TransactionStatus, TransactionType, Wallet
from coursepay.notifications import send_quietly
from coursepay.services.admin import AdminReviewService
from coursepay.services.wallets import WalletLedger

INSTRUCTOR = {"X-User-Id": "instructor-1", "X-User-Role": "INSTRUCTOR"}
OTHER_INSTRUCTOR = {"X-User-Id": "instructor-2", "X-User-Role": "INSTRUCTOR"}
LEARNER = {"X-User-Id": "learner-1", "X-User-Role": "LEARNER"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


def _withdraw(client, amount, headers=INSTRUCTOR, instructor_id="instructor-1"):
    return client.post(f"/instructors/{instructor_id}/wallet/withdraw", json={"amount": amount}, headers=headers)


def _review(client, txn_id, status, headers=ADMIN):
    return client.patch(f"/admin/transactions/{txn_id}/status", json={"status": status}, headers=headers)


def test_withdrawal_request_reserves_funds(client, settle_purchase, wallet_balance):
    settle_purchase()
    r = _withdraw(client, 50000)
    assert r.status_code == 201
    body = r.json()
    assert body["type"] == "WITHDRAWAL"
    assert body["status"] == "PENDING"
    assert body["amount"] == 50000
    assert body["grossAmount"] is None
    assert wallet_balance() == 35000


def test_approving_a_withdrawal_keeps_funds_out(client, settle_purchase, wallet_balance):
    settle_purchase()
    txn = _withdraw(client, 50000).json()

    r = _review(client, txn["id"], "APPROVED")
    assert r.status_code == 200
    body = r.json()
    assert body["transaction"]["status"] == "APPROVED"
    assert body["transaction"]["reviewedBy"] == "admin-1"
    assert body["transaction"]["reviewedAt"] is not None
    assert body["walletBalance"] == 35000
    assert wallet_balance() == 35000


def test_rejecting_a_withdrawal_returns_funds(client, settle_purchase, wallet_balance):
    settle_purchase()
    txn = _withdraw(client, 50000).json()

    r = _review(client, txn["id"], "REJECTED")
    assert r.status_code == 200
    assert r.json()["walletBalance"] == 85000
    assert wallet_balance() == 85000


@pytest.mark.parametrize("first, second", [
    ("APPROVED", "REJECTED"),
    ("REJECTED", "APPROVED"),
    ("REJECTED", "REJECTED"),
])
def test_reviews_are_final(client, settle_purchase, wallet_balance, first, second):
    settle_purchase()
    txn = _withdraw(client, 50000).json()
    assert _review(client, txn["id"], first).status_code == 200
    balance = wallet_balance()

    r = _review(client, txn["id"], second)
    assert r.status_code == 409
    assert f"already {first}" in r.json()["detail"]
    # second review moved no money
    assert wallet_balance() == balance


def test_settled_revenue_cannot_be_reviewed(client, settle_purchase, wallet_balance):
    settle_purchase()
    rows = client.get("/admin/transactions", params={"type": "REVENUE"}, headers=ADMIN).json()
    r = _review(client, rows[0]["id"], "REJECTED")
    assert r.status_code == 409
    assert wallet_balance() == 85000


def test_review_rejects_non_terminal_or_unknown_status(client, settle_purchase):
    settle_purchase()
    txn = _withdraw(client, 1000).json()
    assert _review(client, txn["id"], "PENDING").status_code == 400
    assert _review(client, txn["id"], "BOGUS").status_code == 400


def test_review_of_missing_transaction_is_404(client, catalog):
    assert _review(client, 424242, "APPROVED").status_code == 404


def test_insufficient_balance_creates_no_transaction(client, settle_purchase, wallet_balance, count_rows):
    settle_purchase()
    r = _withdraw(client, 85001)
    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient wallet balance"
    assert count_rows(LedgerTransaction, LedgerTransaction.type == TransactionType.WITHDRAWAL) == 0
    assert wallet_balance() == 85000


@pytest.mark.parametrize("amount", [0, -100])
def test_withdrawal_amount_must_be_positive(client, settle_purchase, amount):
    settle_purchase()
    assert _withdraw(client, amount).status_code == 400


def test_only_the_owner_requests_withdrawals(client, settle_purchase, wallet_balance):
    settle_purchase()
    assert _withdraw(client, 1000, headers=OTHER_INSTRUCTOR).status_code == 403
    assert _withdraw(client, 1000, headers=ADMIN).status_code == 403
    assert wallet_balance() == 85000


def test_admin_routes_require_admin(client, catalog):
    assert client.get("/admin/transactions").status_code == 401
    assert client.get("/admin/transactions", headers=INSTRUCTOR).status_code == 403
    assert client.get("/admin/dashboard-overview", headers=LEARNER).status_code == 403
    assert _review(client, 1, "APPROVED", headers=INSTRUCTOR).status_code == 403


def test_list_and_get_transactions(client, settle_purchase):
    settle_purchase()
    _withdraw(client, 20000)

    rows = client.get("/admin/transactions", headers=ADMIN).json()
    assert [t["type"] for t in rows] == ["WITHDRAWAL", "REVENUE"]

    pending = client.get("/admin/transactions", params={"status": "PENDING"}, headers=ADMIN).json()
    assert len(pending) == 1 and pending[0]["amount"] == 20000

    revenue = client.get(f"/admin/transactions/{rows[1]['id']}", headers=ADMIN).json()
    assert revenue["amount"] == 85000
    assert revenue["grossAmount"] == 100000
    assert revenue["commission"] == 15000
    assert revenue["orderCode"] is not None

    assert client.get("/admin/transactions/424242", headers=ADMIN).status_code == 404


def test_dashboard_overview(client, settle_purchase):
    settle_purchase()
    _withdraw(client, 20000)

    r = client.get("/admin/dashboard-overview", headers=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body["netRevenue"] == 85000
    assert body["grossRevenue"] == 100000
    assert body["commission"] == 15000
    assert body["monthlyNetRevenue"] == 85000
    assert body["monthlyGrossRevenue"] == 100000
    assert body["revenueTransactions"] == 1
    assert body["averageTransaction"] == 85000
    assert body["totalTransactions"] == 2
    assert body["pendingWithdrawals"] == 1
    assert body["pendingWithdrawalAmount"] == 20000


def test_dashboard_on_empty_ledger(client, catalog):
    body = client.get("/admin/dashboard-overview", headers=ADMIN).json()
    assert body["netRevenue"] == 0
    assert body["averageTransaction"] == 0
    assert body["pendingWithdrawals"] == 0


def test_wallet_is_visible_to_owner_and_admin_only(client, settle_purchase):
    settle_purchase()
    r = client.get("/instructors/instructor-1/wallet", headers=INSTRUCTOR)
    assert r.status_code == 200
    assert r.json()["balance"] == 85000

    assert client.get("/instructors/instructor-1/wallet", headers=ADMIN).status_code == 200
    assert client.get("/instructors/instructor-1/wallet", headers=LEARNER).status_code == 403
    assert client.get("/instructors/instructor-1/transactions", headers=OTHER_INSTRUCTOR).status_code == 403


def test_instructor_transaction_history(client, settle_purchase):
    settle_purchase()
    _withdraw(client, 5000)
    rows = client.get("/instructors/instructor-1/transactions", headers=INSTRUCTOR).json()
    assert [(t["type"], t["amount"]) for t in rows] == [("WITHDRAWAL", 5000), ("REVENUE", 85000)]

    other = client.get("/instructors/instructor-2/transactions", headers=OTHER_INSTRUCTOR).json()
    assert other == []


def test_wallet_lookup_without_wallet_is_404(client, catalog):
    r = client.get("/instructors/instructor-no-wallet/wallet", headers=ADMIN)
    assert r.status_code == 404


def test_open_wallet_is_idempotent(catalog, uow_factory):
    ledger = WalletLedger(uow_factory)
    first = ledger.open_wallet("instructor-no-wallet")
    second = ledger.open_wallet("instructor-no-wallet")
    assert first.id == second.id
    assert first.balance == 0

    # existing wallets are returned untouched
    assert ledger.open_wallet("instructor-1").instructor_id == "instructor-1"

    with pytest.raises(NotFoundError):
        ledger.open_wallet("nobody")


def test_dashboard_month_excludes_earlier_revenue(catalog, uow_factory):
    with SessionLocal() as db:
        wallet_id = db.query(Wallet).filter(Wallet.instructor_id == "instructor-1").one().id
        db.add_all([
            LedgerTransaction(wallet_id=wallet_id, amount=85000, type=TransactionType.REVENUE,
                              status=TransactionStatus.APPROVED, order_code=1,
                              created_at=datetime(2026, 3, 31, 23, 0, tzinfo=timezone.utc)),
            LedgerTransaction(wallet_id=wallet_id, amount=42500, type=TransactionType.REVENUE,
                              status=TransactionStatus.APPROVED, order_code=2,
                              created_at=datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)),
        ])
        db.commit()

    overview = AdminReviewService(uow_factory).dashboard_overview(now=datetime(2026, 4, 15, tzinfo=timezone.utc))
    assert overview.net_revenue == 127500
    assert overview.gross_revenue == 150000
    # March 31st falls before the start of April
    assert overview.monthly_net_revenue == 42500
    assert overview.monthly_gross_revenue == 50000
    assert overview.revenue_transactions == 2


def test_gross_and_commission_follows_configured_rate(uow_factory):
    assert AdminReviewService(uow_factory).gross_and_commission(85000) == (100000, 15000)
    assert AdminReviewService(uow_factory, Decimal("0.20")).gross_and_commission(80000) == (100000, 20000)


def test_review_notifies_the_instructor(client, settle_purchase, notifier):
    settle_purchase()
    txn = _withdraw(client, 50000).json()
    before = len(notifier.sent)

    assert _review(client, txn["id"], "REJECTED").status_code == 200
    assert len(notifier.sent) == before + 1
    sent = notifier.sent[-1]
    assert sent["to"] == "instructor1@example.com"
    assert sent["subject"] == f"Transaction {txn['id']} rejected"
    assert "Wallet balance: 85000" in sent["body"]

    # a conflicting second review sends nothing
    assert _review(client, txn["id"], "APPROVED").status_code == 409
    assert len(notifier.sent) == before + 1


def test_send_quietly_skips_missing_recipient_and_swallows_failures(notifier):
    send_quietly(notifier, None, "subject", "body")
    assert notifier.sent == []

    notifier.fail = True
    send_quietly(notifier, "instructor1@example.com", "subject", "body")
    assert notifier.sent == []
