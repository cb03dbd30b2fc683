"""
Payment reconciliation tests.

payment_status is always derived from the sum of credit payments linked
to the invoice; these tests walk an invoice through pending -> partial ->
paid and check that debits and unlinked payments never move it.
"""

import pytest

from stockbill.errors import AuthorizationError, NotFoundError, ValidationError
from stockbill.models import Invoice, Payment
from stockbill.services import invoice_service, payment_service


@pytest.fixture
def invoice_1000(db_session, branch_a, make_product, user_identity):
    """A 1000-cent invoice in branch A."""
    product = make_product(branch_a, stock=10, price_cents=500)
    return invoice_service.create_invoice(user_identity, {
        "customer": {"name": "Walk-in"},
        "items": [{"product_id": product.id, "quantity": 2}],
    })


def pay(identity, amount, invoice=None, payment_type="credit", **extra):
    payload = {
        "amount_cents": amount,
        "payment_method": "cash",
        "payment_type": payment_type,
        "description": "Counter payment",
    }
    if invoice is not None:
        payload["invoice_id"] = invoice["id"]
    payload.update(extra)
    return payment_service.record_payment(identity, payload)


class TestDeriveStatus:

    @pytest.mark.parametrize("total,paid,expected", [
        (1000, 0, "pending"),
        (1000, 1, "partial"),
        (1000, 999, "partial"),
        (1000, 1000, "paid"),
        (1000, 1500, "paid"),
        (0, 0, "paid"),
    ])
    def test_status_from_amounts(self, total, paid, expected):
        assert payment_service.derive_payment_status(total, paid) == expected


# ============================================================================
# record_payment
# ============================================================================

class TestRecordPayment:

    def test_partial_then_paid(self, db_session, invoice_1000, manager_identity):
        first = pay(manager_identity, 400, invoice_1000)
        assert first["invoice_payment_status"] == "partial"
        assert first["branch_id"] == "branch-a"

        second = pay(manager_identity, 600, invoice_1000)
        assert second["invoice_payment_status"] == "paid"
        assert db_session.get(Invoice, invoice_1000["id"]).payment_status == "paid"

    def test_overpayment_is_paid(self, db_session, invoice_1000, manager_identity):
        assert pay(manager_identity, 5000, invoice_1000)["invoice_payment_status"] == "paid"

    def test_debit_does_not_count(self, db_session, invoice_1000, manager_identity):
        pay(manager_identity, 400, invoice_1000)
        debit = pay(manager_identity, 400, invoice_1000, payment_type="debit")
        assert debit["invoice_payment_status"] == "partial"
        assert payment_service.paid_amount_cents(invoice_1000["id"]) == 400

    def test_unlinked_payment_changes_nothing(self, db_session, invoice_1000, manager_identity):
        payment = pay(manager_identity, 1000)
        assert payment["invoice_id"] is None
        assert "invoice_payment_status" not in payment
        assert db_session.get(Invoice, invoice_1000["id"]).payment_status == "pending"

    def test_requires_payments_create(self, db_session, invoice_1000, user_identity):
        with pytest.raises(AuthorizationError):
            pay(user_identity, 100, invoice_1000)
        assert db_session.query(Payment).count() == 0

    def test_unknown_invoice(self, db_session, branch_a, manager_identity):
        with pytest.raises(NotFoundError):
            pay(manager_identity, 100, {"id": 4242})

    def test_other_branch_invoice_is_forbidden(self, db_session, invoice_1000, branch_b, identity_for):
        other_manager = identity_for("manager", "branch-b", user_id="900")
        with pytest.raises(AuthorizationError):
            pay(other_manager, 100, invoice_1000)
        assert db_session.get(Invoice, invoice_1000["id"]).payment_status == "pending"

    def test_admin_can_pay_any_branch(self, db_session, invoice_1000, branch_b, identity_for):
        admin_b = identity_for("admin", "branch-b", user_id="901")
        payment = pay(admin_b, 1000, invoice_1000)
        assert payment["branch_id"] == "branch-a"
        assert payment["invoice_payment_status"] == "paid"

    def test_admin_branch_must_match_invoice(self, db_session, invoice_1000, branch_b, admin_identity):
        with pytest.raises(ValidationError, match="invoice branch"):
            pay(admin_identity, 100, invoice_1000, branch="branch-b")
        assert db_session.query(Payment).count() == 0
        assert db_session.get(Invoice, invoice_1000["id"]).payment_status == "pending"

        same = pay(admin_identity, 100, invoice_1000, branch="branch-a")
        assert same["branch_id"] == "branch-a"

    def test_linked_payment_ignores_client_branch(self, db_session, invoice_1000, branch_b, manager_identity):
        payment = pay(manager_identity, 100, invoice_1000, branch="branch-b")
        assert payment["branch_id"] == "branch-a"

    @pytest.mark.parametrize("overrides", [
        {"amount_cents": 0},
        {"amount_cents": -5},
        {"amount_cents": 10.5},
        {"payment_method": "barter"},
        {"payment_type": "refund"},
        {"description": ""},
        {"description": None},
    ])
    def test_rejects_malformed(self, db_session, branch_a, manager_identity, overrides):
        payload = {
            "amount_cents": 100,
            "payment_method": "card",
            "payment_type": "credit",
            "description": "x",
        }
        payload.update(overrides)
        with pytest.raises(ValidationError):
            payment_service.record_payment(manager_identity, payload)


# ============================================================================
# Reconciliation
# ============================================================================

class TestReconcile:

    def test_reconcile_is_idempotent(self, db_session, invoice_1000, manager_identity):
        pay(manager_identity, 250, invoice_1000)
        first = payment_service.reconcile_invoice(manager_identity, invoice_1000["id"])
        second = payment_service.reconcile_invoice(manager_identity, invoice_1000["id"])
        assert first == second == {
            "total_cents": 1000,
            "paid_cents": 250,
            "remaining_cents": 750,
            "payment_status": "partial",
        }

    def test_reconcile_repairs_drifted_status(self, db_session, invoice_1000, manager_identity):
        pay(manager_identity, 1000, invoice_1000)
        invoice = db_session.get(Invoice, invoice_1000["id"])
        invoice.payment_status = "pending"
        db_session.commit()

        assert payment_service.reconcile(invoice.id) == "paid"
        db_session.commit()
        assert db_session.get(Invoice, invoice.id).payment_status == "paid"

    def test_reconcile_other_branch_is_not_found(self, db_session, invoice_1000, branch_b, identity_for):
        other_manager = identity_for("manager", "branch-b", user_id="900")
        with pytest.raises(NotFoundError):
            payment_service.reconcile_invoice(other_manager, invoice_1000["id"])


class TestListPayments:

    def test_summary_and_scope(self, db_session, invoice_1000, branch_b, manager_identity, identity_for):
        pay(manager_identity, 700, invoice_1000)
        pay(manager_identity, 200, payment_type="debit")
        pay(identity_for("admin", None, user_id="901"), 50, branch="branch-b")

        mine = payment_service.list_payments(manager_identity)
        assert mine["summary"] == {
            "total_credit_cents": 700,
            "total_debit_cents": 200,
            "net_cents": 500,
            "count": 2,
        }

        credits = payment_service.list_payments(manager_identity, payment_type="credit")
        assert [p["amount_cents"] for p in credits["items"]] == [700]

        by_invoice = payment_service.list_payments(manager_identity, invoice_id=invoice_1000["id"])
        assert by_invoice["count"] == 1
