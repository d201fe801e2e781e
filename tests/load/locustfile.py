"""
Load test script for the GroundUp payments backend.

Simulates a client checking out a job post:
  1. Fetch pricing
  2. Open a checkout (create-payment-intent)
  3. Re-open the same job (retry after a closed modal)

Point it at an environment whose STRIPE_SECRET_KEY is a test-mode key; every
checkout opens a real test PaymentIntent.

Run:
    pip install locust
    LOAD_TEST_CLIENT_ID=<client uuid> locust -f tests/load/locustfile.py --host https://YOUR-RAILWAY-URL

Then open http://localhost:8089 to configure users/spawn rate and start.
Expect 429s once a single IP passes PAYMENT_RATE_LIMIT.
"""

import os
import time
from locust import HttpUser, task, between, SequentialTaskSet


# ---------------------------------------------------------------------------
# Configuration, override with env vars for different environments
# ---------------------------------------------------------------------------
CLIENT_ID = os.getenv("LOAD_TEST_CLIENT_ID", "")
CLASSIFICATION = os.getenv("LOAD_TEST_CLASSIFICATION", "STANDARD")


def request_headers():
    return {"X-Correlation-ID": f"load-test-{time.monotonic()}"}


def checkout_body(existing_job_id=None):
    body = {
        "jobPostData": {
            "title": "Load Test Carpenter",
            "type": "Full-time",
            "classification": CLASSIFICATION,
            "location": "Denver, CO",
            "salary": "$35/hr",
            "description": "Framing and finish carpentry on commercial sites.",
        },
        "companyData": {"name": "Load Test Construction", "email": "loadtest@example.com"},
        "clientId": CLIENT_ID,
    }
    if existing_job_id:
        body["existingJobId"] = existing_job_id
    return body


# ---------------------------------------------------------------------------
# Sequential flow: pricing → checkout → re-open checkout
# ---------------------------------------------------------------------------
class CheckoutFlow(SequentialTaskSet):
    """Simulate a client opening and re-opening the payment modal."""

    job_post_id = None

    @task
    def view_pricing(self):
        self.client.get("/pricing", headers=request_headers(), name="/pricing")

    @task
    def open_checkout(self):
        with self.client.post(
            "/create-payment-intent",
            json=checkout_body(),
            headers=request_headers(),
            name="/create-payment-intent",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                data = resp.json()
                self.job_post_id = data.get("jobPostId")
                if not data.get("clientSecret"):
                    resp.failure("No clientSecret in response")
            elif resp.status_code == 429:
                resp.success()
            else:
                resp.failure(f"Checkout failed: {resp.status_code}")

    @task
    def reopen_checkout(self):
        if not self.job_post_id:
            return

        with self.client.post(
            "/create-payment-intent",
            json=checkout_body(self.job_post_id),
            headers=request_headers(),
            name="/create-payment-intent (existing job)",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 429):
                resp.success()
            else:
                resp.failure(f"Re-open failed: {resp.status_code}")

    @task
    def stop(self):
        self.interrupt()


# ---------------------------------------------------------------------------
# User class
# ---------------------------------------------------------------------------
class PaymentsUser(HttpUser):
    """Simulates a typical client session."""

    wait_time = between(1, 3)

    @task(3)
    def health_check(self):
        """Lightweight probe, reports circuit states."""
        self.client.get("/health", name="/health")

    @task(1)
    def unsigned_webhook(self):
        """Forged deliveries must be rejected quickly."""
        with self.client.post(
            "/stripe-webhook",
            data=b'{"type": "payment_intent.succeeded"}',
            headers={"stripe-signature": "t=0,v1=forged"},
            name="/stripe-webhook (forged)",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Forged webhook accepted: {resp.status_code}")

    @task(1)
    def metrics(self):
        """Fetch in-process metrics."""
        self.client.get("/metrics", name="/metrics")

    tasks = {CheckoutFlow: 1}
