# Overview: Service-layer operations for M-Pesa; STK push, QR payments and confirmation polling.

"""
Mobile Money

WHY: M-Pesa confirms asynchronously. The customer approves on their phone
and the till finds out by asking the provider.

FLOW:
1. initiate_stk_push / generate_qr_payment: ask the provider, then persist a
   PENDING MobileMoneyRequest. A provider error writes nothing.
2. check_request: one provider check.
   - completed: settle the target (split part, session balance or pending
     payment) with method MPESA and the checkout id as reference
   - failed: request FAILED, payments untouched
   - pending / provider error: count the attempt; after
     MPESA_POLL_MAX_ATTEMPTS the request becomes UNKNOWN and needs manual
     reconciliation
3. await_confirmation: bounded poll loop over check_request.

A payment is never completed without an explicit "completed" from the provider.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict, deque

import httpx
from flask import current_app

from ..extensions import db
from ..models import MobileMoneyRequest, GamingSession, Payment
from ..errors import NotFound, InvalidState, ValidationError, ExternalServiceFailure, SplitImbalance
from ..validation import require_positive_amount
from lounge.time_utils import utcnow
from .concurrency import run_with_retry
from . import payment_service, split_service


logger = logging.getLogger(__name__)


# =============================================================================
# STATUS (CONSTANTS)
# =============================================================================

PROVIDER_PENDING = "pending"
PROVIDER_COMPLETED = "completed"
PROVIDER_FAILED = "failed"

PROVIDER_STATUSES = (PROVIDER_PENDING, PROVIDER_COMPLETED, PROVIDER_FAILED)

REQUEST_PENDING = "PENDING"
REQUEST_COMPLETED = "COMPLETED"
REQUEST_FAILED = "FAILED"
REQUEST_UNKNOWN = "UNKNOWN"

TERMINAL_REQUEST_STATUSES = (REQUEST_COMPLETED, REQUEST_FAILED, REQUEST_UNKNOWN)

KIND_STK = "STK"
KIND_QR = "QR"

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_POLL_MAX_ATTEMPTS = 5


# =============================================================================
# PROVIDERS
# =============================================================================

class MobileMoneyProvider(ABC):
    """Gateway to the mobile-money network. Raise ExternalServiceFailure on transport errors."""

    @abstractmethod
    def initiate(self, phone_number: str, amount_cents: int, reference: str) -> dict:
        """Start an STK push. Returns {"checkout_id": ...}."""

    @abstractmethod
    def check_status(self, checkout_id: str) -> str:
        """One of pending / completed / failed."""

    @abstractmethod
    def generate_qr(self, amount_cents: int, reference: str, account_reference: str | None = None) -> dict:
        """Returns {"qr_image": ..., "request_id": ...}."""

    @abstractmethod
    def check_qr_status(self, request_id: str) -> str:
        """One of pending / completed / failed."""


class SimulatedMobileMoneyProvider(MobileMoneyProvider):
    """
    In-process provider: every request completes unless told otherwise.

    Tests script outcomes per id with queue_statuses(); an exception set on
    fail_with is raised by the next call instead.
    """

    def __init__(self, default_status: str = PROVIDER_COMPLETED):
        self.default_status = default_status
        self.fail_with: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self._scripted: dict[str, deque] = defaultdict(deque)

    def queue_statuses(self, ident: str, *statuses: str) -> None:
        self._scripted[ident].extend(statuses)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc

    def _next_status(self, ident: str) -> str:
        queue = self._scripted.get(ident)
        if queue:
            return queue.popleft()
        return self.default_status

    def initiate(self, phone_number, amount_cents, reference):
        self.calls.append(("initiate", reference))
        self._maybe_fail()
        return {"checkout_id": f"ws_CO_{uuid.uuid4().hex[:20]}"}

    def check_status(self, checkout_id):
        self.calls.append(("check_status", checkout_id))
        self._maybe_fail()
        return self._next_status(checkout_id)

    def generate_qr(self, amount_cents, reference, account_reference=None):
        self.calls.append(("generate_qr", reference))
        self._maybe_fail()
        request_id = f"QR_{uuid.uuid4().hex[:20]}"
        return {"qr_image": f"data:image/png;base64,{request_id}", "request_id": request_id}

    def check_qr_status(self, request_id):
        self.calls.append(("check_qr_status", request_id))
        self._maybe_fail()
        return self._next_status(request_id)


class HttpMobileMoneyProvider(MobileMoneyProvider):
    """
    JSON gateway client.

    Endpoints (relative to base_url):
      POST /stkpush          {"phone", "amount", "reference"} -> {"checkout_id"}
      GET  /stkpush/<id>     -> {"status"}
      POST /qr               {"amount", "reference", "account_reference"} -> {"qr_image", "request_id"}
      GET  /qr/<id>          -> {"status"}

    Amounts go over the wire in whole currency units.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10.0, client: httpx.Client | None = None):
        if not base_url and client is None:
            raise ValueError("base_url is required for the HTTP mobile-money provider")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        try:
            r = self._client.request(method, path, json=payload)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceFailure(f"Mobile-money provider error: {exc}") from exc

    @staticmethod
    def _status(body: dict) -> str:
        status = str(body.get("status", "")).lower()
        return status if status in PROVIDER_STATUSES else PROVIDER_PENDING

    def initiate(self, phone_number, amount_cents, reference):
        body = self._request("POST", "/stkpush", {
            "phone": phone_number,
            "amount": amount_cents / 100,
            "reference": reference,
        })
        if not body.get("checkout_id"):
            raise ExternalServiceFailure("Mobile-money provider returned no checkout id")
        return {"checkout_id": body["checkout_id"]}

    def check_status(self, checkout_id):
        return self._status(self._request("GET", f"/stkpush/{checkout_id}"))

    def generate_qr(self, amount_cents, reference, account_reference=None):
        body = self._request("POST", "/qr", {
            "amount": amount_cents / 100,
            "reference": reference,
            "account_reference": account_reference or reference,
        })
        if not body.get("request_id"):
            raise ExternalServiceFailure("Mobile-money provider returned no request id")
        return {"qr_image": body.get("qr_image"), "request_id": body["request_id"]}

    def check_qr_status(self, request_id):
        return self._status(self._request("GET", f"/qr/{request_id}"))


def build_provider(config) -> MobileMoneyProvider:
    kind = (config.get("MPESA_PROVIDER") or "simulated").lower()
    if kind == "http":
        return HttpMobileMoneyProvider(
            base_url=config.get("MPESA_BASE_URL", ""),
            api_key=config.get("MPESA_API_KEY", ""),
            timeout=config.get("MPESA_TIMEOUT_SECONDS", 10.0),
        )
    if kind == "simulated":
        return SimulatedMobileMoneyProvider()
    raise ValueError(f"Unknown MPESA_PROVIDER: {kind}")


def get_provider(provider: MobileMoneyProvider | None = None) -> MobileMoneyProvider:
    if provider is not None:
        return provider
    return current_app.extensions["lounge.mpesa"]


# =============================================================================
# TARGET RESOLUTION
# =============================================================================

def _resolve_amount(
    amount_cents: int | None,
    session_id: int | None,
    payment_id: int | None,
    split_id: int | None,
    split_index: int | None,
) -> int:
    """
    Amount the customer is asked for. Must match the target when one is given.
    """
    if split_id is not None:
        if split_index is None:
            raise ValidationError("split_index is required with split_id")
        split = split_service.get_split(split_id)
        if split.status != split_service.SPLIT_STATUS_OPEN:
            raise InvalidState(f"Split {split_id} is already settled")
        part = split_service._get_part(split, split_index)
        if part.paid:
            raise InvalidState(f"Part {split_index} is already paid")
        expected = part.amount_cents
    elif payment_id is not None:
        payment = db.session.query(Payment).filter_by(id=payment_id).first()
        if not payment:
            raise NotFound(f"Payment {payment_id} not found")
        if payment.status != payment_service.PAYMENT_STATUS_PENDING:
            raise InvalidState(f"Payment {payment_id} is not pending", status=payment.status)
        expected = payment.amount_cents
    elif session_id is not None:
        session = db.session.query(GamingSession).filter_by(id=session_id).first()
        if not session:
            raise NotFound(f"Session {session_id} not found")
        if session.status != "COMPLETED":
            raise InvalidState(f"Session {session_id} is not completed", status=session.status)
        remaining = payment_service.remaining_cents(session)
        if remaining <= 0:
            raise InvalidState(f"Session {session_id} is already fully paid")
        if amount_cents is None:
            return remaining
        require_positive_amount(amount_cents)
        if amount_cents > remaining:
            raise ValidationError(f"Amount {amount_cents} exceeds remaining balance {remaining}")
        return amount_cents
    else:
        raise ValidationError("One of session_id, payment_id or split_id is required")

    if amount_cents is not None and amount_cents != expected:
        raise ValidationError(f"Amount {amount_cents} does not match the amount due {expected}")
    return expected


def _persist_request(kind: str, checkout_id: str, amount_cents: int, **target) -> MobileMoneyRequest:
    def _op():
        request = MobileMoneyRequest(
            kind=kind,
            checkout_id=checkout_id,
            amount_cents=amount_cents,
            status=REQUEST_PENDING,
            attempts=0,
            **target,
        )
        db.session.add(request)
        db.session.commit()
        return request

    return run_with_retry(_op)


# =============================================================================
# INITIATION
# =============================================================================

def initiate_stk_push(
    phone_number: str,
    amount_cents: int | None = None,
    session_id: int | None = None,
    payment_id: int | None = None,
    split_id: int | None = None,
    split_index: int | None = None,
    customer_id: int | None = None,
    provider: MobileMoneyProvider | None = None,
) -> MobileMoneyRequest:
    phone_number = (phone_number or "").strip()
    if not phone_number:
        raise ValidationError("phone_number is required")

    amount = _resolve_amount(amount_cents, session_id, payment_id, split_id, split_index)
    reference = _reference(session_id, payment_id, split_id, split_index)

    result = get_provider(provider).initiate(phone_number, amount, reference)

    request = _persist_request(
        KIND_STK,
        result["checkout_id"],
        amount,
        phone_number=phone_number,
        session_id=session_id,
        payment_id=payment_id,
        split_id=split_id,
        split_index=split_index,
        customer_id=customer_id,
    )
    logger.info("STK push %s initiated for %s cents", request.checkout_id, amount)
    return request


def generate_qr_payment(
    amount_cents: int | None = None,
    session_id: int | None = None,
    payment_id: int | None = None,
    split_id: int | None = None,
    split_index: int | None = None,
    customer_id: int | None = None,
    account_reference: str | None = None,
    provider: MobileMoneyProvider | None = None,
) -> tuple[MobileMoneyRequest, str | None]:
    """Returns the persisted request and the QR image to display."""
    amount = _resolve_amount(amount_cents, session_id, payment_id, split_id, split_index)
    reference = _reference(session_id, payment_id, split_id, split_index)

    result = get_provider(provider).generate_qr(amount, reference, account_reference)

    request = _persist_request(
        KIND_QR,
        result["request_id"],
        amount,
        session_id=session_id,
        payment_id=payment_id,
        split_id=split_id,
        split_index=split_index,
        customer_id=customer_id,
    )
    return request, result.get("qr_image")


def _reference(session_id, payment_id, split_id, split_index) -> str:
    if split_id is not None:
        return f"SPLIT-{split_id}-{split_index + 1}"
    if payment_id is not None:
        return f"PAY-{payment_id}"
    return f"SESSION-{session_id}"


# =============================================================================
# CONFIRMATION
# =============================================================================

def get_request(checkout_id: str) -> MobileMoneyRequest:
    request = db.session.query(MobileMoneyRequest).filter_by(checkout_id=checkout_id).first()
    if not request:
        raise NotFound(f"Mobile-money request {checkout_id} not found")
    return request


def _settle_target(request: MobileMoneyRequest, notifier=None) -> Payment:
    if request.split_id is not None:
        return split_service.pay_part(
            request.split_id,
            request.split_index,
            payment_service.METHOD_MPESA,
            amount_cents=request.amount_cents,
            customer_id=request.customer_id,
            reference=request.checkout_id,
            notifier=notifier,
        )
    if request.payment_id is not None:
        return payment_service.settle_transaction(
            request.payment_id,
            payment_service.METHOD_MPESA,
            customer_id=request.customer_id,
            reference=request.checkout_id,
            notifier=notifier,
        )
    return payment_service.settle_full(
        request.session_id,
        payment_service.METHOD_MPESA,
        request.amount_cents,
        customer_id=request.customer_id,
        reference=request.checkout_id,
        notifier=notifier,
    )


def _mark(request_id: int, status: str, *, error: str | None = None, payment_id: int | None = None,
          count_attempt: bool = False) -> MobileMoneyRequest:
    def _op():
        request = db.session.query(MobileMoneyRequest).filter_by(id=request_id).one()
        if count_attempt:
            request.attempts = (request.attempts or 0) + 1
        request.status = status
        if error is not None:
            request.last_error = error[:255]
        if payment_id is not None:
            request.settled_payment_id = payment_id
        if status in TERMINAL_REQUEST_STATUSES:
            request.resolved_at = utcnow()
        db.session.commit()
        return request

    return run_with_retry(_op)


def check_request(checkout_id: str, provider: MobileMoneyProvider | None = None, notifier=None) -> MobileMoneyRequest:
    """
    One confirmation check. Terminal requests are returned unchanged.
    """
    request = get_request(checkout_id)
    if request.status in TERMINAL_REQUEST_STATUSES:
        return request

    max_attempts = current_app.config.get("MPESA_POLL_MAX_ATTEMPTS", DEFAULT_POLL_MAX_ATTEMPTS)
    gateway = get_provider(provider)

    try:
        if request.kind == KIND_QR:
            status = gateway.check_qr_status(checkout_id)
        else:
            status = gateway.check_status(checkout_id)
    except ExternalServiceFailure as exc:
        logger.warning(
            "Mobile-money status check failed for %s",
            checkout_id,
            extra={"component": "mpesa", "details": {"checkout_id": checkout_id, "error": str(exc)}},
        )
        status, error = PROVIDER_PENDING, str(exc)
    else:
        error = None

    if status == PROVIDER_COMPLETED:
        try:
            payment = _settle_target(request, notifier=notifier)
        except (InvalidState, ValidationError, SplitImbalance) as exc:
            # Money was taken but the target moved on (paid in cash, split edited).
            logger.error(
                "Mobile-money request %s confirmed but could not be applied: %s",
                checkout_id,
                exc,
                extra={"component": "mpesa", "details": {"checkout_id": checkout_id}},
            )
            return _mark(request.id, REQUEST_UNKNOWN, error=str(exc), count_attempt=True)
        logger.info("Mobile-money request %s completed as payment %s", checkout_id, payment.id)
        return _mark(request.id, REQUEST_COMPLETED, payment_id=payment.id, count_attempt=True)

    if status == PROVIDER_FAILED:
        logger.warning(
            "Mobile-money request %s failed at the provider",
            checkout_id,
            extra={"component": "mpesa", "details": {"checkout_id": checkout_id}},
        )
        return _mark(request.id, REQUEST_FAILED, error="Provider reported failure", count_attempt=True)

    if (request.attempts or 0) + 1 >= max_attempts:
        logger.warning(
            "Mobile-money request %s still unconfirmed after %s checks; needs manual reconciliation",
            checkout_id,
            max_attempts,
            extra={"component": "mpesa", "details": {"checkout_id": checkout_id}},
        )
        return _mark(request.id, REQUEST_UNKNOWN, error=error, count_attempt=True)
    return _mark(request.id, REQUEST_PENDING, error=error, count_attempt=True)


def await_confirmation(
    checkout_id: str,
    provider: MobileMoneyProvider | None = None,
    notifier=None,
    sleep=time.sleep,
) -> MobileMoneyRequest:
    """
    Poll until the request is terminal, sleeping MPESA_POLL_INTERVAL_SECONDS
    between checks. Bounded by MPESA_POLL_MAX_ATTEMPTS checks in total.
    """
    interval = current_app.config.get("MPESA_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)
    request = check_request(checkout_id, provider=provider, notifier=notifier)
    while request.status == REQUEST_PENDING:
        sleep(interval)
        request = check_request(checkout_id, provider=provider, notifier=notifier)
    return request


def list_requests(status: str | None = None, limit: int = 100) -> list[MobileMoneyRequest]:
    query = db.session.query(MobileMoneyRequest)
    if status:
        query = query.filter(MobileMoneyRequest.status == status)
    limit = max(1, min(limit or 100, 500))
    return query.order_by(MobileMoneyRequest.created_at.desc(), MobileMoneyRequest.id.desc()).limit(limit).all()
