"""Admin reports: the metrics dashboard and the CSV exports.

All commands here are read-only.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from livepos.core.clock import parse_iso
from livepos.core.errors import ValidationError
from livepos.core.rbac import Capability
from livepos.schemas.commands import EmptyPayload, ReportExportPayload
from livepos.schemas.state import Order, State
from livepos.services import customer_service, inventory_service, metrics_service
from livepos.services.export_service import dated_filename, money, rows_to_csv, yes_no
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

ORDER_HEADERS = [
    "orderId", "createdAt", "doneAt", "prepSeconds", "createdByUsername",
    "status", "subtotal", "discount", "total", "paymentMethod",
]
CUSTOMER_HEADERS = [
    "id", "name", "phone", "email", "marketingOptIn", "createdAt",
    "lastOrderDate", "totalOrders", "totalSpent",
]
INVENTORY_HEADERS = [
    "id", "name", "sku", "category", "supplier", "quantity", "minThreshold",
    "costPrice", "sellingPrice", "isArchived", "createdAt", "updatedAt",
]
STAFF_HEADERS = [
    "staffId", "username", "ordersCreated", "totalRevenue", "completedOrders", "avgPrepTime",
]
PROMO_HEADERS = [
    "id", "code", "type", "value", "maxDiscount", "expiryDate", "maxUses",
    "uses", "isActive", "createdAt",
]


def _parse_bound(value: Optional[str], field: str, end: bool = False) -> Optional[datetime]:
    """Parse a report date bound. A bare date as end bound covers that whole day."""
    if not value:
        return None
    moment = parse_iso(value)
    if moment is None:
        raise ValidationError(f"{field} must be an ISO date")
    if end and len(value.strip()) == 10:
        moment += timedelta(days=1)
    return moment


def orders_in_range(state: State, start: Optional[datetime], end: Optional[datetime]) -> List[Order]:
    """Orders in the window, oldest first. ``end`` is exclusive for bare dates."""
    selected = []
    for order in reversed(state.orders):
        created = parse_iso(order.created_at)
        if created is None:
            continue
        if start is not None and created < start:
            continue
        if end is not None and created >= end:
            continue
        selected.append(order)
    return selected


def orders_csv(state: State, orders: List[Order]) -> str:
    paid_with = {}
    for receipt in state.receipts:
        paid_with.setdefault(receipt.order_id, receipt.payment_method)

    rows = (
        [
            o.id,
            o.created_at,
            o.done_at or "",
            o.prep_seconds if o.prep_seconds is not None else "",
            o.created_by_username,
            o.status,
            money(o.subtotal),
            money(o.discount),
            money(o.total),
            paid_with.get(o.id, ""),
        ]
        for o in orders
    )
    return rows_to_csv(ORDER_HEADERS, rows)


@command("report:exportCSV", Capability.ADMIN_ONLY, ReportExportPayload, mutates=False)
def export_orders(ctx: CommandContext, payload: ReportExportPayload) -> CommandResult:
    start = _parse_bound(payload.start_date, "startDate")
    end = _parse_bound(payload.end_date, "endDate", end=True)
    if start is not None and end is not None and start > end:
        raise ValidationError("startDate must be before endDate")
    orders = orders_in_range(ctx.state, start, end)
    return CommandResult(reply={
        "csv": orders_csv(ctx.state, orders),
        "filename": dated_filename("orders", ctx.now),
        "count": len(orders),
    })


@command("report:metrics", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def metrics_report(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    """Dashboard figures: running buckets plus the derived breakdowns."""
    state = ctx.state
    m = state.metrics
    today, week, month, _ = metrics_service.bucket_keys(ctx.now, ctx.store.tz)
    prep_times = list(m.prep_times.values())

    report = {
        "today": m.daily_revenue.get(today, 0),
        "thisWeek": m.weekly_revenue.get(week, 0),
        "thisMonth": m.monthly_revenue.get(month, 0),
        "totalRevenue": state.revenue.total,
        "totalOrders": len(state.orders),
        "doneOrders": sum(1 for o in state.orders if o.status == "done"),
        "avgPrepTime": round(sum(prep_times) / len(prep_times)) if prep_times else 0,
        "bestsellers": metrics_service.top_bestsellers(state),
        "staffPerformance": metrics_service.staff_performance_table(state),
        "paymentMethods": metrics_service.payment_method_totals(state),
        "hourlyDistribution": dict(m.hourly_distribution),
        "dailyRevenue": dict(m.daily_revenue),
        "weeklyRevenue": dict(m.weekly_revenue),
        "monthlyRevenue": dict(m.monthly_revenue),
        "revenueByStaff": metrics_service.revenue_by_staff(state),
        "revenueByItem": metrics_service.revenue_by_item(state),
        "prepTimeStats": metrics_service.prep_time_stats(state),
        "customerMetrics": customer_service.customer_metrics(state),
        "promoMetrics": metrics_service.promo_metrics(state, ctx.now),
        "inventoryMetrics": inventory_service.inventory_metrics(state),
    }
    return CommandResult(reply={"metrics": report})


@command("export:customers", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def export_customers(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    rows = (
        [c.id, c.name, c.phone, c.email, yes_no(c.marketing_opt_in), c.created_at,
         c.last_order_date, c.total_orders, money(c.total_spent)]
        for c in ctx.state.customers
    )
    return CommandResult(reply={
        "csv": rows_to_csv(CUSTOMER_HEADERS, rows),
        "filename": dated_filename("customers", ctx.now),
    })


@command("export:inventory", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def export_inventory(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    rows = (
        [i.id, i.name, i.sku, i.category, i.supplier, i.quantity, i.min_threshold,
         money(i.cost_price), money(i.selling_price), yes_no(i.is_archived),
         i.created_at, i.updated_at]
        for i in ctx.state.inventory
    )
    return CommandResult(reply={
        "csv": rows_to_csv(INVENTORY_HEADERS, rows),
        "filename": dated_filename("inventory", ctx.now),
    })


@command("export:staffPerformance", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def export_staff_performance(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    table = metrics_service.staff_performance_table(ctx.state)
    rows = (
        [staff_id, row["username"], row["ordersCreated"], money(row["totalRevenue"]),
         row["completedOrders"], row["avgPrepTime"]]
        for staff_id, row in table.items()
    )
    return CommandResult(reply={
        "csv": rows_to_csv(STAFF_HEADERS, rows),
        "filename": dated_filename("staff_performance", ctx.now),
    })


@command("export:promoUsage", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def export_promo_usage(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    rows = (
        [p.id, p.code, p.type, p.value, p.max_discount, p.expiry_date, p.max_uses,
         p.uses, yes_no(p.is_active), p.created_at]
        for p in ctx.state.promos
    )
    return CommandResult(reply={
        "csv": rows_to_csv(PROMO_HEADERS, rows),
        "filename": dated_filename("promo_usage", ctx.now),
    })
