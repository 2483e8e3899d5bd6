"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SaveProductPaymentRequest(BaseModel):
    """
    Request schema for creating or updating a product payment.

    With ``productPaymentId`` the request patches that payment; without it a
    new payment is created.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "clientId": 42,
                    "productName": "ALL_FINANCE_EMPLOYEMENT",
                    "entityData": {
                        "amount": "500.00",
                        "paymentDate": "10-02-2026",
                        "partialPayment": True,
                        "invoiceNo": "INV-1001",
                    },
                },
                {
                    "clientId": 42,
                    "productName": "SPONSOR_CHARGES",
                    "amount": "100.00",
                    "paymentDate": "2026-02-10",
                    "invoiceNo": "INV-1002",
                },
            ]
        },
    )

    product_payment_id: Optional[int] = Field(default=None, gt=0, description="Payment to update")
    client_id: Optional[int] = Field(default=None, description="Client identifier")
    product_name: Optional[str] = Field(default=None, description="Product type")
    amount: Optional[Union[Decimal, str]] = Field(
        default=None, description="Amount (master-only products)"
    )
    payment_date: Optional[str] = Field(
        default=None, description="Payment date, DD-MM-YYYY or YYYY-MM-DD (master-only products)"
    )
    invoice_no: Optional[str] = Field(default=None, description="Invoice number (master-only products)")
    remarks: Optional[str] = Field(default=None, description="Remarks (master-only products)")
    entity_data: Optional[Dict[str, Any]] = Field(
        default=None, description="Detail record fields (all other products)"
    )

    def ledger_payload(self) -> Dict[str, Any]:
        """Fields the caller actually sent, keyed as the ledger expects."""
        return self.model_dump(
            by_alias=True,
            exclude_unset=True,
            exclude={"product_payment_id", "client_id"},
        )


class ProductPaymentResponse(BaseModel):
    """Response schema for a single product payment."""

    success: bool = Field(default=True)
    action: Optional[str] = Field(default=None, description="CREATED, UPDATED or DELETED")
    message: Optional[str] = Field(default=None)
    data: Dict[str, Any] = Field(..., description="Product payment with its entity")


class ProductPaymentListResponse(BaseModel):
    """Response schema for a client's product payments."""

    success: bool = Field(default=True)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = Field(..., description="Number of payments")


class FinanceDecisionResponse(BaseModel):
    """Response schema for approve/reject."""

    success: bool = Field(default=True)
    message: str = Field(..., description="Outcome message")
    data: Dict[str, Any] = Field(..., description="Updated financing record with approver")


class PendingApprovalsResponse(BaseModel):
    """Response schema for the pending approvals queue."""

    success: bool = Field(default=True)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = Field(..., description="Number of pending payments")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")

