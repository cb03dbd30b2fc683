"""
StockBill Load Testing with Locust

Seed a server first (python -m flask system init), then run:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 20 --spawn-rate 5 --run-time 60s --headless

Billing users hammer the same few products on purpose: a 400 with an
"available" field is the stock guard working and counts as success. A 500
on invoice creation is always a failure.

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%
"""

import os
import random
import time
from typing import Dict, List, Optional

from locust import HttpUser, between, events, task


# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_PASSWORD = os.environ.get("STOCKBILL_PASSWORD", "Password123!")

COUNTER_USERS = [
    {"email": os.environ.get("STOCKBILL_USER", "user@stockbill.local"), "password": DEFAULT_PASSWORD},
]
MANAGER_USERS = [
    {"email": os.environ.get("STOCKBILL_ADMIN", "admin@stockbill.local"), "password": DEFAULT_PASSWORD},
]

WRITE_MARKERS = ("create", "adjust", "pay", "scan")


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Per-endpoint counts and latencies for the end-of-run summary."""

    def __init__(self):
        self.samples: Dict[str, List[float]] = {}
        self.errors: Dict[str, int] = {}

    def record(self, name: str, response_time: float, success: bool):
        self.samples.setdefault(name, []).append(response_time)
        self.errors.setdefault(name, 0)
        if not success:
            self.errors[name] += 1

    def get_summary(self) -> Dict:
        summary = {}
        for name, times in self.samples.items():
            times = sorted(times)
            count = len(times)
            summary[name] = {
                "count": count,
                "errors": self.errors[name],
                "error_rate": self.errors[name] / count * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[min(int(count * 0.95), count - 1)],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class StockBillUser(HttpUser):
    """Authenticates on start and keeps the bearer token."""
    wait_time = between(0.2, 1)
    abstract = True
    credentials: List[Dict] = COUNTER_USERS

    token: Optional[str] = None
    product_ids: List[int] = []

    def on_start(self):
        creds = random.choice(self.credentials)
        response = self.client.post("/api/auth/login", json=creds, name="auth/login")
        if response.status_code == 200:
            self.token = response.json().get("token")
        self.refresh_products()

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, method: str, path: str, ok=(200,), **kwargs):
        start = time.time()
        response = self.client.request(method, path, headers=self.get_headers(), name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok)
        return response

    def refresh_products(self):
        response = self.timed("products/list", "GET", "/api/products", params={"limit": 10, "sort_by": "stock"})
        if response.status_code == 200:
            self.product_ids = [p["id"] for p in response.json().get("items", [])]


class BrowsingUser(StockBillUser):
    """Reads: product search, invoice history, health."""
    weight = 2

    @task(5)
    def list_products(self):
        self.refresh_products()

    @task(3)
    def list_invoices(self):
        self.timed("invoices/list", "GET", "/api/invoices", params={"limit": 20})

    @task(1)
    def health_check(self):
        self.timed("system/health", "GET", "/health")


class BillingUser(StockBillUser):
    """Counter user creating invoices against a small, contended product set."""
    weight = 4

    @task(6)
    def create_invoice(self):
        if not self.product_ids:
            self.refresh_products()
            return

        product_ids = random.sample(self.product_ids[:3], k=min(2, len(self.product_ids[:3])))
        payload = {
            "customer": {"name": f"Load Customer {random.randint(1, 9999)}"},
            "items": [{"product_id": pid, "quantity": random.randint(1, 3)} for pid in product_ids],
            "payment_method": random.choice(["cash", "card", "upi"]),
        }
        start = time.time()
        response = self.client.post("/api/invoices", json=payload, headers=self.get_headers(), name="invoices/create")
        # Insufficient stock is an expected outcome under contention
        success = response.status_code == 201 or (
            response.status_code == 400 and "available" in (response.json() or {})
        )
        metrics.record("invoices/create", (time.time() - start) * 1000, success)

    @task(1)
    def scan_label(self):
        if not self.product_ids:
            return
        product_id = random.choice(self.product_ids)
        qr = self.timed("products/qr", "GET", f"/api/products/{product_id}/qr")
        if qr.status_code != 200:
            return
        self.timed("billing/scan", "POST", "/api/billing/qr-scan", ok=(200, 400),
                   json={"qr_data": qr.json()["qr_data"]})


class ManagerUser(StockBillUser):
    """Restocks contended products and settles recent invoices."""
    weight = 1
    credentials = MANAGER_USERS

    @task(3)
    def restock(self):
        if not self.product_ids:
            return
        self.timed("inventory/adjust", "POST", "/api/inventory/adjust", ok=(201,), json={
            "product_id": random.choice(self.product_ids[:3]),
            "quantity_delta": random.randint(5, 20),
            "reason": "Load test restock",
        })

    @task(2)
    def pay_recent_invoice(self):
        response = self.timed("invoices/list", "GET", "/api/invoices", params={"status": "pending", "limit": 5})
        if response.status_code != 200:
            return
        invoices = response.json().get("items", [])
        if not invoices:
            return
        invoice = random.choice(invoices)
        self.timed("payments/pay", "POST", "/api/payments", ok=(201,), json={
            "invoice_id": invoice["id"],
            "amount_cents": max(invoice["total_cents"], 1),
            "payment_method": "cash",
            "payment_type": "credit",
            "description": f"Settlement {invoice['invoice_number']}",
        })


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)
    print(f"\n{'Endpoint':<24} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    all_pass = True
    for name, stats in sorted(metrics.get_summary().items()):
        threshold = 1000 if any(marker in name for marker in WRITE_MARKERS) else 500
        passed = stats["p95_ms"] < threshold and stats["error_rate"] < 1
        all_pass = all_pass and passed
        print(f"{name:<24} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
              f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]")

    print("=" * 80)
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
