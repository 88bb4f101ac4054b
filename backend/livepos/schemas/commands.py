"""Command payload schemas.

One model per command, validated once by the dispatcher before the handler
runs. Payloads arrive camelCase from the clients; unknown keys are ignored.
Update payloads leave every optional field unset by default, so handlers can
tell "not sent" from "sent as empty" through ``model_fields_set``.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, field_validator
from pydantic.alias_generators import to_camel

from livepos.schemas.state import (
    OrderStatus,
    PaymentMethod,
    PromoType,
    StaffRoleName,
    StaffStatus,
)


class CommandPayload(BaseModel):
    """Base for every command payload."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    def provided(self, field: str) -> bool:
        """True when the client sent ``field`` at all."""
        return field in self.model_fields_set


class EmptyPayload(CommandPayload):
    pass


class IdPayload(CommandPayload):
    id: str = Field(min_length=1)


# ----- settings & catalog -----

class SettingsUpdatePayload(CommandPayload):
    tax_percent: Optional[FiniteFloat] = Field(default=None, ge=0)
    service_charge_percent: Optional[FiniteFloat] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=1)


class CategoryCreatePayload(CommandPayload):
    name: str = Field(min_length=1)


class CategoryUpdatePayload(IdPayload):
    name: Optional[str] = Field(default=None, min_length=1)
    sort_order: Optional[int] = None


class MenuCreatePayload(CommandPayload):
    name: str = Field(min_length=1)
    price: FiniteFloat = Field(ge=0)
    category_id: str = ""
    image_url: str = ""
    description: str = ""


class MenuUpdatePayload(IdPayload):
    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[FiniteFloat] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    unavailable: Optional[bool] = None


# ----- staff -----

class StaffCreatePayload(CommandPayload):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: StaffRoleName = "cashier"


class StaffStatusPayload(IdPayload):
    status: StaffStatus


class StaffRolePayload(IdPayload):
    role: StaffRoleName


# ----- promos -----

class PromoCreatePayload(CommandPayload):
    code: str = Field(min_length=1)
    type: PromoType
    value: FiniteFloat = Field(ge=0)
    expiry_date: Optional[str] = None
    max_uses: Optional[int] = Field(default=None, ge=0)
    max_discount: Optional[FiniteFloat] = Field(default=None, ge=0)


class PromoUpdatePayload(IdPayload):
    code: Optional[str] = Field(default=None, min_length=1)
    type: Optional[PromoType] = None
    value: Optional[FiniteFloat] = Field(default=None, ge=0)
    expiry_date: Optional[str] = None
    max_uses: Optional[int] = Field(default=None, ge=0)
    max_discount: Optional[FiniteFloat] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class PromoApplyPayload(CommandPayload):
    code: str = Field(min_length=1)
    order_total: FiniteFloat = Field(ge=0)


# ----- revenue -----

class RevenueAdjustPayload(CommandPayload):
    amount: FiniteFloat
    reason: str = Field(min_length=1)


# ----- orders -----

class OrderLineInput(CommandPayload):
    item_id: str = Field(min_length=1)
    qty: int = Field(gt=0)


class OrderCreatePayload(CommandPayload):
    items: List[OrderLineInput] = Field(min_length=1)
    customer_name: str = Field(min_length=1)
    table_number: str = Field(min_length=1)
    note: str = ""
    promo_code: Optional[str] = None
    customer_phone: str = ""
    customer_email: str = ""
    marketing_opt_in: bool = False

    @field_validator("customer_name", "table_number", "customer_phone", "customer_email", "promo_code",
                     mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class OrderUpdatePayload(IdPayload):
    note: Optional[str] = None
    items: Optional[List[OrderLineInput]] = Field(default=None, min_length=1)


class OrderStatusPayload(IdPayload):
    status: OrderStatus


# ----- receipts & reports -----

class ReceiptCreatePayload(CommandPayload):
    order_id: str = Field(min_length=1)
    payment_method: PaymentMethod
    note: str = ""


class ReceiptPreviewPayload(CommandPayload):
    order_id: str = Field(min_length=1)


class ReportExportPayload(CommandPayload):
    start_date: Optional[str] = None
    end_date: Optional[str] = None


# ----- inventory -----

def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class InventoryFields(CommandPayload):
    category: Optional[str] = None
    supplier: Optional[str] = None
    supplier_contact: Optional[str] = None
    quantity: Optional[FiniteFloat] = Field(default=None, ge=0)
    min_threshold: Optional[FiniteFloat] = None
    cost_price: Optional[FiniteFloat] = Field(default=None, ge=0)
    selling_price: Optional[FiniteFloat] = Field(default=None, ge=0)
    delivery_date: Optional[str] = None
    delivery_time: Optional[str] = None
    expiry_date: Optional[str] = None
    batch_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity", "min_threshold", "cost_price", "selling_price", mode="before")
    @classmethod
    def blank_number(cls, v: Any) -> Any:
        return _blank_to_none(v)


class InventoryCreatePayload(InventoryFields):
    name: str = Field(min_length=1)
    sku: str = Field(min_length=1)


class InventoryUpdatePayload(InventoryFields):
    id: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    sku: Optional[str] = Field(default=None, min_length=1)


class InventorySearchPayload(CommandPayload):
    query: str = ""
    include_archived: bool = False


class InventoryLogsPayload(CommandPayload):
    item_id: Optional[str] = None


# ----- customers -----

class CustomerSearchPayload(CommandPayload):
    query: str = ""


class CustomerHistoryPayload(CommandPayload):
    customer_id: str = Field(min_length=1)
