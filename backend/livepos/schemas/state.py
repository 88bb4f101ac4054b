"""Canonical state schemas.

The whole operational state is one JSON document. These models give it a
typed shape while keeping the on-disk and on-the-wire form camelCase. Unknown
keys are preserved (``extra="allow"``) so that a document written by a newer
build survives a load/save cycle through this one.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_VERSION = 5

OrderStatus = Literal["new", "preparing", "done"]
StaffStatus = Literal["active", "paused"]
StaffRoleName = Literal["cashier", "kitchen", "manager"]
PromoType = Literal["percentage", "fixed"]
PaymentMethod = Literal["cash", "card", "other"]

PAYMENT_METHODS = ("cash", "card", "other")


class StateModel(BaseModel):
    """Base for every persisted entity."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class Settings(StateModel):
    tax_percent: float = 0
    service_charge_percent: float = 0
    currency: str = "AED"


class Category(StateModel):
    id: str
    name: str
    sort_order: int = 0


class MenuItem(StateModel):
    id: str
    name: str
    price: float
    category_id: str = ""
    image_url: str = ""
    description: str = ""
    is_active: bool = True
    unavailable: bool = False
    created_at: Optional[str] = None


class StaffAccount(StateModel):
    id: str
    username: str
    password_hash: str
    status: StaffStatus = "active"
    role: StaffRoleName = "cashier"
    created_at: Optional[str] = None

    def public(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "status": self.status, "role": self.role}


class OrderLine(StateModel):
    """Item line captured when the order was created; never re-priced."""

    item_id: str
    name: str
    price: float
    qty: int

    @property
    def line_total(self) -> float:
        return self.price * self.qty


class AppliedPromo(StateModel):
    """Promo terms as they stood when the order used the code."""

    id: str
    code: str
    type: PromoType = "fixed"
    value: float = 0
    max_discount: Optional[float] = None
    discount: float = 0


class Order(StateModel):
    id: str
    created_at: str
    created_by_staff_id: str
    created_by_username: str = ""
    status: OrderStatus = "new"
    note: str = ""
    customer_name: str = ""
    table_number: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    marketing_opt_in: bool = False
    customer_id: Optional[str] = None
    items: List[OrderLine] = Field(default_factory=list)
    subtotal: float = 0
    discount: float = 0
    total: float = 0
    promo: Optional[AppliedPromo] = None
    acknowledged_at: Optional[str] = None
    preparing_at: Optional[str] = None
    done_at: Optional[str] = None
    prep_seconds: Optional[int] = None


class Promo(StateModel):
    id: str
    code: str
    type: PromoType
    value: float
    expiry_date: Optional[str] = None
    max_uses: Optional[int] = None
    max_discount: Optional[float] = None
    uses: int = 0
    is_active: bool = True
    created_at: Optional[str] = None


class Receipt(StateModel):
    id: str
    order_id: str
    payment_method: PaymentMethod
    amount: float
    note: str = ""
    created_at: str
    created_by: str = ""


class RevenueAdjustment(StateModel):
    id: str
    amount: float
    reason: str
    ts: str
    by: str = ""
    previous_total: Optional[float] = None


class RevenueLedger(StateModel):
    total: float = 0
    adjustments: List[RevenueAdjustment] = Field(default_factory=list)


class LogEntry(StateModel):
    id: str
    timestamp: str
    type: str
    actor: Dict[str, Any] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict)


class InventoryItem(StateModel):
    id: str
    name: str
    sku: str
    category: str = ""
    supplier: str = ""
    supplier_contact: str = ""
    quantity: float = 0
    min_threshold: float = 0
    cost_price: float = 0
    selling_price: float = 0
    delivery_date: Optional[str] = None
    delivery_time: str = ""
    expiry_date: Optional[str] = None
    batch_number: str = ""
    notes: str = ""
    is_archived: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class InventoryLog(StateModel):
    id: str
    item_id: str
    field: str
    old_value: Any = None
    new_value: Any = None
    changed_by: str = "system"
    changed_at: str


class Customer(StateModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    table_number: str = ""
    marketing_opt_in: bool = False
    first_order_date: Optional[str] = None
    last_order_date: Optional[str] = None
    total_orders: int = 0
    total_spent: float = 0
    created_at: Optional[str] = None


class BestsellerStat(StateModel):
    count: int = 0
    revenue: float = 0


class StaffPerformance(StateModel):
    orders_created: int = 0
    total_revenue: float = 0
    total_prep_time: int = 0
    completed_orders: int = 0


def _payment_method_totals() -> Dict[str, float]:
    return {method: 0.0 for method in PAYMENT_METHODS}


class Metrics(StateModel):
    bestsellers: Dict[str, BestsellerStat] = Field(default_factory=dict)
    staff_performance: Dict[str, StaffPerformance] = Field(default_factory=dict)
    daily_revenue: Dict[str, float] = Field(default_factory=dict)
    weekly_revenue: Dict[str, float] = Field(default_factory=dict)
    monthly_revenue: Dict[str, float] = Field(default_factory=dict)
    prep_times: Dict[str, int] = Field(default_factory=dict)
    hourly_distribution: Dict[str, int] = Field(default_factory=dict)
    payment_methods: Dict[str, float] = Field(default_factory=_payment_method_totals)


class State(StateModel):
    version: int = CURRENT_VERSION
    settings: Settings = Field(default_factory=Settings)
    categories: List[Category] = Field(default_factory=list)
    menu: List[MenuItem] = Field(default_factory=list)
    staff: List[StaffAccount] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)
    revenue: RevenueLedger = Field(default_factory=RevenueLedger)
    logs: List[LogEntry] = Field(default_factory=list)
    promos: List[Promo] = Field(default_factory=list)
    discounts: List[Dict[str, Any]] = Field(default_factory=list)
    receipts: List[Receipt] = Field(default_factory=list)
    inventory: List[InventoryItem] = Field(default_factory=list)
    customers: List[Customer] = Field(default_factory=list)
    inventory_logs: List[InventoryLog] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict in the persisted (camelCase) layout."""
        return self.model_dump(mode="json", by_alias=True)

    def find_order(self, order_id: str) -> Optional[Order]:
        return next((o for o in self.orders if o.id == order_id), None)

    def find_menu_item(self, item_id: str) -> Optional[MenuItem]:
        return next((m for m in self.menu if m.id == item_id), None)

    def find_staff(self, staff_id: str) -> Optional[StaffAccount]:
        return next((s for s in self.staff if s.id == staff_id), None)

    def find_promo(self, promo_id: str) -> Optional[Promo]:
        return next((p for p in self.promos if p.id == promo_id), None)

    def find_customer(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self.customers if c.id == customer_id), None)
