"""HTTP surface for owner payments: creation, listing and status reconciliation.

The signing key is loaded while this module is imported, so a missing or
invalid key stops the process before it serves traffic.
"""

from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from paydash.common.auth import get_owner_id
from paydash.common.config import settings
from paydash.common.db import SessionLocal
from paydash.common.logging import configure_logging, logger, trace_id_ctx
from paydash.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paydash.common.startup import log_startup_config
from paydash.common.state_machine import PaymentStatus
from paydash.common.tracing import instrument_app, setup_tracing
from paydash.gateway.errors import (
    AuthExchangeFailed,
    GatewayError,
    GatewayRejected,
    GatewayResponseInvalid,
    GatewayUnavailable,
    SignatureFailure,
)
from paydash.services.payments.schemas import (
    PaymentCreateRequest,
    PaymentResponse,
    PaymentStatsDay,
    SignatureCheckResponse,
)
from paydash.services.payments.service import (
    PaymentNotDeletable,
    PaymentNotFound,
    UnsupportedCurrency,
    build_payment_service,
)

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings)
service = build_payment_service(SessionLocal)
app = FastAPI(title="Payment Dashboard API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def gateway_http_error(exc: GatewayError) -> HTTPException:
    """Translate the gateway error taxonomy into client-facing HTTP errors."""

    if isinstance(exc, GatewayRejected):
        return HTTPException(status_code=400, detail=exc.title)
    if isinstance(exc, GatewayUnavailable):
        return HTTPException(status_code=503, detail="payment gateway temporarily unavailable")
    if isinstance(exc, (AuthExchangeFailed, GatewayResponseInvalid)):
        return HTTPException(status_code=502, detail="payment gateway integration error")
    if isinstance(exc, SignatureFailure):
        return HTTPException(status_code=500, detail="request signing is misconfigured")
    return HTTPException(status_code=502, detail="payment gateway error")


@app.post("/api/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(req: PaymentCreateRequest, owner_id: str = Depends(get_owner_id)):
    """Create a payment at the gateway and store the returned snapshot."""

    try:
        intent = await service.create_payment(owner_id, req)
    except UnsupportedCurrency as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except GatewayError as exc:
        logger.error("create_payment_failed error_type=%s error=%s", type(exc).__name__, exc)
        raise gateway_http_error(exc) from exc
    return PaymentResponse.from_intent(intent)


@app.get("/api/payments", response_model=list[PaymentResponse])
def list_payments(status: PaymentStatus | None = None, owner_id: str = Depends(get_owner_id)):
    """List the owner's payments, optionally filtered by status."""

    return [PaymentResponse.from_intent(i) for i in service.list_payments(owner_id, status)]


@app.get("/api/payments/search", response_model=list[PaymentResponse])
def search_payments(q: str = Query(default=""), owner_id: str = Depends(get_owner_id)):
    if not q:
        raise HTTPException(status_code=400, detail="search term is required")
    return [PaymentResponse.from_intent(i) for i in service.search_payments(owner_id, q)]


@app.get("/api/payments/stats", response_model=list[PaymentStatsDay])
def payment_stats(
    days: int = Query(default=settings.stats_default_days, ge=1, le=366),
    owner_id: str = Depends(get_owner_id),
):
    """Per-day totals for dashboard graphs."""

    return service.payment_stats(owner_id, days)


@app.get("/api/payments/test-signature", response_model=SignatureCheckResponse)
async def test_signature():
    """Check request signing against the gateway's signature test endpoint (no auth)."""

    try:
        valid = await service.check_signature()
    except GatewayError as exc:
        logger.error("signature_check_failed error_type=%s error=%s", type(exc).__name__, exc)
        raise gateway_http_error(exc) from exc
    message = "Signature is valid!" if valid else "Signature validation failed - check logs"
    return SignatureCheckResponse(valid=valid, message=message)


@app.get("/api/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str, owner_id: str = Depends(get_owner_id)):
    """Return the stored snapshot; use refresh-status to reconcile with the gateway."""

    try:
        return PaymentResponse.from_intent(service.get_payment(owner_id, payment_id))
    except PaymentNotFound as exc:
        raise HTTPException(status_code=404, detail="payment not found") from exc


@app.post("/api/payments/{payment_id}/refresh-status", response_model=PaymentResponse)
async def refresh_status(payment_id: str, owner_id: str = Depends(get_owner_id)):
    """Reconcile with the gateway after the user returns from hosted authorization.

    Blocks for up to `attempts * delay` while polling.
    """

    try:
        result = await service.reconcile_status(owner_id, payment_id)
    except PaymentNotFound as exc:
        raise HTTPException(status_code=404, detail="payment not found") from exc
    except GatewayError as exc:
        logger.error("refresh_status_failed error_type=%s error=%s", type(exc).__name__, exc)
        raise gateway_http_error(exc) from exc
    return PaymentResponse.from_intent(
        result.intent,
        status_message=result.status_message,
        can_retry=result.can_retry,
    )


@app.delete("/api/payments/{payment_id}", status_code=204)
def delete_payment(payment_id: str, owner_id: str = Depends(get_owner_id)):
    """Delete an unpaid payment (awaiting authorization, authorizing or failed)."""

    try:
        service.delete_payment(owner_id, payment_id)
    except PaymentNotFound as exc:
        raise HTTPException(status_code=404, detail="payment not found") from exc
    except PaymentNotDeletable as exc:
        raise HTTPException(status_code=400, detail="cannot delete paid or completed payments") from exc
    return Response(status_code=204)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
