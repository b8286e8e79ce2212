from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.app.db.models.core_types import OrderStatus, PaymentMethod, PaymentStatus

# Tolérance d'arrondi (2 décimales) sur total vs somme des lignes
TOTAL_TOLERANCE = Decimal("0.01")


# ---------- INPUT ----------
class OrderLineIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: int = Field(gt=0)
    product_name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)

    @field_validator("product_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("product_name must not be blank")
        return value


class OrderCreate(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=64)
    customer_id: int | None = None
    customer_tenant_id: str | None = Field(default=None, max_length=64)
    customer_name: str | None = Field(default=None, max_length=200)
    customer_phone: str | None = Field(default=None, max_length=32)
    store_name: str | None = Field(default=None, max_length=255)
    store_address: str | None = None
    lines: list[OrderLineIn] = Field(min_length=1)
    total: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _check_total(self) -> "OrderCreate":
        computed = sum((ln.unit_price * ln.quantity for ln in self.lines), Decimal("0"))
        if abs(computed - self.total) > TOTAL_TOLERANCE:
            raise ValueError(f"total {self.total} does not match lines ({computed})")
        return self


class AcceptIn(BaseModel):
    estimated_minutes: int | None = Field(default=None, gt=0, le=24 * 60)


class RejectIn(BaseModel):
    reason: str = ""


class CompleteIn(BaseModel):
    # validé par le service (ValidationError typée), pas par pydantic
    payment_method: str = ""


# ---------- OUTPUT ----------
class OrderLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    customer_tenant_id: str | None
    customer_id: int | None
    customer_name: str | None
    customer_phone: str | None
    total: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod | None
    store_name: str | None
    store_address: str | None
    estimated_ready_minutes: int | None
    rejection_reason: str | None
    expires_at: datetime | None
    pickup_time: datetime | None
    created_at: datetime
    updated_at: datetime
    lines: list[OrderLineRead] = Field(default_factory=list)


class OrderEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    event_type: str
    actor_id: int | None
    actor_role: str | None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="meta")
    created_at: datetime


class OrderDetailRead(BaseModel):
    order: OrderRead
    events: list[OrderEventRead]


class OrderListRead(BaseModel):
    orders: list[OrderRead]
    counts: dict[str, int]


class DashboardStats(BaseModel):
    total_orders: int
    counts: dict[str, int]
    total_revenue: Decimal
