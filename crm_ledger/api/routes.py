"""
API routes for the product payment ledger.
"""
from typing import Any, Dict, NoReturn, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from crm_ledger.core.entries import Actor
from crm_ledger.core.errors import (
    DuplicateKeyError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from crm_ledger.enums import LedgerAction

from .dependencies import LedgerServices, get_actor, get_services, require_approver
from .schemas import (
    FinanceDecisionResponse,
    HealthCheckResponse,
    PendingApprovalsResponse,
    ProductPaymentListResponse,
    ProductPaymentResponse,
    SaveProductPaymentRequest,
)

logger = structlog.get_logger(__name__)

# Create routers
product_payment_router = APIRouter(prefix="/client-product-payments", tags=["product-payments"])
finance_router = APIRouter(prefix="/all-finance", tags=["all-finance"])
monitoring_router = APIRouter(tags=["monitoring"])

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (DuplicateKeyError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def _raise_http(operation: str, error: LedgerError) -> NoReturn:
    """Translate a ledger error into an HTTP error."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            status_code = code
            break

    if status_code >= 500:
        logger.error(f"api_{operation}_error", error=str(error))
    else:
        logger.warning(f"api_{operation}_rejected", error=str(error), status_code=status_code)
    raise HTTPException(status_code=status_code, detail=str(error))


@product_payment_router.post(
    "",
    response_model=ProductPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create or update a product payment",
    description="Create a product payment, or patch one when productPaymentId is given",
)
async def save_product_payment(
    request: SaveProductPaymentRequest,
    response: Response,
    services: LedgerServices = Depends(get_services),
    actor: Optional[Actor] = Depends(get_actor),
) -> Dict[str, Any]:
    """
    Save a product payment.

    The ledger row and its detail record are written in one transaction.
    """
    payload = request.ledger_payload()
    try:
        if request.product_payment_id is not None:
            logger.info(
                "api_update_product_payment_request",
                product_payment_id=request.product_payment_id,
            )
            data = await services.ledger.update(request.product_payment_id, payload, actor=actor)
            response.status_code = status.HTTP_200_OK
            return {
                "action": LedgerAction.UPDATED.value,
                "message": "Product payment updated successfully",
                "data": data,
            }

        logger.info(
            "api_create_product_payment_request",
            client_id=request.client_id,
            product_name=request.product_name,
        )
        data = await services.ledger.create(
            request.client_id, request.product_name, payload, actor=actor
        )
        return {
            "action": LedgerAction.CREATED.value,
            "message": "Product payment created successfully",
            "data": data,
        }

    except LedgerError as e:
        _raise_http("save_product_payment", e)


@product_payment_router.get(
    "/client/{client_id}",
    response_model=ProductPaymentListResponse,
    summary="List a client's product payments",
)
async def list_client_payments(
    client_id: int,
    services: LedgerServices = Depends(get_services),
) -> Dict[str, Any]:
    """All product payments of a client with their merged entities."""
    try:
        data = await services.ledger.list_by_client(client_id)
        return {"data": data, "count": len(data)}
    except LedgerError as e:
        _raise_http("list_client_payments", e)


@product_payment_router.get(
    "/{product_payment_id}",
    response_model=ProductPaymentResponse,
    summary="Get a product payment",
)
async def get_product_payment(
    product_payment_id: int,
    services: LedgerServices = Depends(get_services),
) -> Dict[str, Any]:
    """Get one product payment by id."""
    try:
        return {"data": await services.ledger.get(product_payment_id)}
    except LedgerError as e:
        _raise_http("get_product_payment", e)


@product_payment_router.delete(
    "/{product_payment_id}",
    response_model=ProductPaymentResponse,
    summary="Delete a product payment",
    description="Delete a product payment together with its detail record",
)
async def delete_product_payment(
    product_payment_id: int,
    services: LedgerServices = Depends(get_services),
    actor: Optional[Actor] = Depends(get_actor),
) -> Dict[str, Any]:
    """Delete a product payment."""
    try:
        data = await services.ledger.delete(product_payment_id, actor=actor)
        return {
            "action": LedgerAction.DELETED.value,
            "message": "Product payment deleted successfully",
            "data": data,
        }
    except LedgerError as e:
        _raise_http("delete_product_payment", e)


@finance_router.get(
    "/pending",
    response_model=PendingApprovalsResponse,
    summary="Pending financing approvals",
)
async def list_pending_approvals(
    services: LedgerServices = Depends(get_services),
    actor: Actor = Depends(require_approver),
) -> Dict[str, Any]:
    """Financing payments awaiting a manager or admin decision."""
    try:
        data = await services.approvals.list_pending()
        return {"data": data, "count": len(data)}
    except LedgerError as e:
        _raise_http("list_pending_approvals", e)


@finance_router.post(
    "/{finance_id}/approve",
    response_model=FinanceDecisionResponse,
    summary="Approve a financing payment",
)
async def approve_payment(
    finance_id: int,
    services: LedgerServices = Depends(get_services),
    actor: Actor = Depends(require_approver),
) -> Dict[str, Any]:
    """Approve a pending financing payment."""
    try:
        data = await services.approvals.approve(finance_id, actor.id)
        return {"message": "Payment approved successfully", "data": data}
    except LedgerError as e:
        _raise_http("approve_payment", e)


@finance_router.post(
    "/{finance_id}/reject",
    response_model=FinanceDecisionResponse,
    summary="Reject a financing payment",
)
async def reject_payment(
    finance_id: int,
    services: LedgerServices = Depends(get_services),
    actor: Actor = Depends(require_approver),
) -> Dict[str, Any]:
    """Reject a pending financing payment."""
    try:
        data = await services.approvals.reject(finance_id, actor.id)
        return {"message": "Payment rejected successfully", "data": data}
    except LedgerError as e:
        _raise_http("reject_payment", e)


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(services: LedgerServices = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await services.health.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(services: LedgerServices = Depends(get_services)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await services.health.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(services: LedgerServices = Depends(get_services)) -> Dict[str, Any]:
    """Readiness probe endpoint. Fails while the database is unreachable."""
    result = await services.health.check_all()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
