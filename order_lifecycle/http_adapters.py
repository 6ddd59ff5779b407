"""HTTP clients for the payment and alerting collaborators.

Concrete implementations of ``PaymentGateway`` and ``LowStockSignal`` built
on ``httpx``. Both share the same call policy:

- Request correlation: ``X-Request-ID`` is taken from ``REQUEST_ID_CTX``.
- A circuit breaker per downstream service stops calls to an unhealthy
  dependency and probes it again in HALF_OPEN after a timeout.
- Transport errors and 5xx responses are retried with exponential backoff.
- Payments propagate an ``Idempotency-Key`` header when one is given.
"""

import logging
import threading
import time
import uuid
from typing import Optional

import httpx

from . import settings
from .context import REQUEST_ID_CTX
from .errors import PaymentFailure

logger = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe, back to OPEN on failure.
      Only one probe may be in flight.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state at call time.

        Raises:
            RuntimeError: ``CIRCUIT_OPEN`` or ``CIRCUIT_HALF_OPEN_BUSY``.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise RuntimeError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False

    def reset(self):
        self.on_success()


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# Per-service instances
payments_cb = _breaker("payments")
alerts_cb = _breaker("alerts")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` (when bound) plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _post(breaker: CircuitBreaker, url: str, payload: dict, headers: dict,
          business_statuses: tuple[int, ...], timeout: float) -> httpx.Response:
    """POST with circuit breaker and retries.

    Responses whose status is 2xx or listed in ``business_statuses`` are
    returned as-is and count as healthy. Transport errors and 5xx are
    retried; anything else is raised immediately.

    Raises:
        RuntimeError: If the circuit is open.
        httpx.RequestError: Transport error after the last attempt.
        httpx.HTTPStatusError: Non-retriable or final 5xx response.
    """
    max_attempts, backoff = _retry_policy()
    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
    state = breaker.before_call()
    headers = dict(headers, **{"X-Circuit-State": state, "X-Retry-Count": "0"})
    tries = 0
    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.post(url, json=payload, headers=headers)
                    if 200 <= resp.status_code < 300 or resp.status_code in business_statuses:
                        breaker.on_success()
                        return resp
                    if resp.status_code < 500:
                        breaker.on_success()
                        resp.raise_for_status()
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)
                if tries >= max_attempts:
                    breaker.on_failure()
                    if exc is not None:
                        raise exc
                    resp.raise_for_status()
                    raise httpx.HTTPStatusError(
                        f"unexpected status {resp.status_code}", request=None, response=resp
                    )
                logger.info("retrying %s (attempt %s) after %s", url, tries + 1, exc or resp.status_code)
                time.sleep(min(backoff * (2 ** (tries - 1)), cap))
    finally:
        breaker.on_finish()


# ---------------- Payments Adapter ---------------- #

class HttpPaymentsClient:
    """``PaymentGateway`` backed by the payments service.

    Business mappings: 200 -> approved (with ``transaction_id`` when the body
    carries one); 402 or 409 -> declined. Every other failure is raised as
    ``PaymentFailure``.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def charge(self, amount_cents: int, currency: str, idempotency_key: str | None = None):
        extra = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            resp = _post(
                payments_cb,
                f"{self.base_url}/charge",
                {"amount_cents": amount_cents, "currency": currency},
                _request_headers(extra),
                business_statuses=(402, 409),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, RuntimeError) as exc:
            raise PaymentFailure(f"payments service unavailable: {exc}") from exc

        if resp.status_code in (402, 409):
            return False, None
        tx = resp.json().get("transaction_id")
        try:
            return True, (uuid.UUID(tx) if tx else None)
        except (TypeError, ValueError):
            logger.warning("payments service returned a malformed transaction id: %r", tx)
            return True, None

    def void(self, transaction_id: uuid.UUID, amount_cents: int, currency: str) -> None:
        """Reverse a charge. Any non-2xx answer is raised as ``PaymentFailure``."""
        try:
            _post(
                payments_cb,
                f"{self.base_url}/void",
                {
                    "transaction_id": str(transaction_id),
                    "amount_cents": amount_cents,
                    "currency": currency,
                },
                _request_headers({"Idempotency-Key": f"void-{transaction_id}"}),
                business_statuses=(),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, RuntimeError) as exc:
            raise PaymentFailure(f"could not void transaction {transaction_id}: {exc}") from exc


# ---------------- Alerts Adapter ---------------- #

class HttpLowStockSignal:
    """``LowStockSignal`` that posts alerts to the alerting service.

    Errors are raised to the caller; the inventory ledger treats the signal
    as fire-and-forget and only logs them.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.ALERTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def publish(self, product_id: str, current_level: int, threshold: int) -> None:
        _post(
            alerts_cb,
            f"{self.base_url}/alerts/low-stock",
            {"product_id": product_id, "current_level": current_level, "threshold": threshold},
            _request_headers(),
            business_statuses=(),
            timeout=self.timeout,
        )
