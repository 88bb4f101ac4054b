"""Order lifecycle.

Orders move new -> preparing -> done. ``done`` is terminal: a done order
cannot be edited, deleted or moved back. A paid order cannot be edited or
deleted either. Every handler here that changes an order's total posts the
exact delta to the revenue ledger and applies the same change to the
metrics aggregator and the linked customer, in that order, before returning.
"""

import logging
from typing import Any, Dict, Optional

from livepos.core.clock import new_id, parse_iso, to_iso
from livepos.core.errors import NotFoundError, ValidationError
from livepos.core.rbac import Capability
from livepos.schemas.commands import (
    IdPayload,
    OrderCreatePayload,
    OrderLineInput,
    OrderStatusPayload,
    OrderUpdatePayload,
)
from livepos.schemas.state import Order, OrderLine, State
from livepos.services import customer_service, promo_service, revenue_service
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

NEW_ORDER_EVENT = "kitchen:newOrder"


def _dump(order: Order) -> Dict[str, Any]:
    return order.model_dump(by_alias=True)


def get_order(state: State, order_id: str) -> Order:
    order = state.find_order(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def is_paid(state: State, order_id: str) -> bool:
    return any(r.order_id == order_id for r in state.receipts)


def snapshot_line(state: State, line: OrderLineInput, existing: Optional[OrderLine] = None) -> OrderLine:
    """Freeze name and price for one order line.

    Lines the order already had keep their captured name and price; new
    lines are priced from the current menu.
    """
    if existing is not None:
        return OrderLine(item_id=existing.item_id, name=existing.name, price=existing.price, qty=line.qty)

    item = state.find_menu_item(line.item_id)
    if item is None:
        raise NotFoundError("Menu item", line.item_id)
    if not item.is_active or item.unavailable:
        raise ValidationError(f"{item.name} is not available")
    return OrderLine(item_id=item.id, name=item.name, price=item.price, qty=line.qty)


def _subtotal(lines) -> float:
    return sum(line.line_total for line in lines)


@command("order:create", Capability.STAFF_OR_ADMIN, OrderCreatePayload)
def create_order(ctx: CommandContext, payload: OrderCreatePayload) -> CommandResult:
    """Place an order.

    Lines are priced from the menu, the promo code (if any) is redeemed,
    the customer record is created or updated, and the total is posted to
    the ledger and the metrics buckets. A code that cannot be redeemed does
    not block the order: it goes through undiscounted and the reply carries
    ``promoError``.
    """
    state = ctx.state
    lines = [snapshot_line(state, line) for line in payload.items]
    subtotal = _subtotal(lines)
    promo, promo_error = None, None
    if payload.promo_code:
        try:
            promo = promo_service.find_redeemable(state, payload.promo_code, ctx.now)
        except ValidationError as e:
            promo_error = e.message
            logger.info(f"Order placed without promo {payload.promo_code!r}: {promo_error}")

    applied = promo_service.redeem(promo, subtotal) if promo is not None else None
    discount = applied.discount if applied is not None else 0.0
    caller = ctx.caller

    order = Order(
        id=new_id(),
        created_at=to_iso(ctx.now),
        created_by_staff_id=caller.subject,
        created_by_username=caller.username or ("Admin" if caller.is_admin else ""),
        note=payload.note,
        customer_name=payload.customer_name,
        table_number=payload.table_number,
        customer_phone=payload.customer_phone,
        customer_email=payload.customer_email,
        marketing_opt_in=payload.marketing_opt_in,
        items=lines,
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
        promo=applied,
    )
    order.customer_id = customer_service.record_order(state, order)
    state.orders.insert(0, order)

    revenue_service.post(state.revenue, order.total)
    ctx.metrics.record_order(order)

    logger.debug(f"Order {order.id} created by {caller.display_name}: total {order.total:.2f}")
    reply = {"order": _dump(order)}
    if promo_error:
        reply["promoError"] = promo_error
    return CommandResult(
        reply=reply,
        audit={"orderId": order.id, "total": order.total, "promo": applied.code if applied else None},
        events=[(NEW_ORDER_EVENT, {"orderId": order.id})],
    )


@command("order:update", Capability.STAFF_OR_ADMIN, OrderUpdatePayload)
def update_order(ctx: CommandContext, payload: OrderUpdatePayload) -> CommandResult:
    """Edit the note and/or replace the item lines of an open order."""
    state = ctx.state
    order = get_order(state, payload.id)
    if order.status == "done":
        raise ValidationError("Cannot edit done order")
    if is_paid(state, order.id):
        raise ValidationError("Cannot edit paid order")

    new_lines = None
    if payload.items is not None:
        existing = {line.item_id: line for line in order.items}
        new_lines = [snapshot_line(state, line, existing.get(line.item_id)) for line in payload.items]

    if payload.note is not None:
        order.note = payload.note

    delta = 0.0
    if new_lines is not None:
        old_lines, old_total = order.items, order.total
        subtotal = _subtotal(new_lines)
        if order.promo is not None:
            discount = promo_service.compute_discount(
                order.promo.type, order.promo.value, subtotal, order.promo.max_discount
            )
            order.promo.discount = discount
        else:
            discount = min(order.discount, subtotal)

        order.items = new_lines
        order.subtotal = subtotal
        order.discount = discount
        order.total = subtotal - discount
        delta = order.total - old_total

        revenue_service.post(state.revenue, delta)
        ctx.metrics.revise_order(old_lines, old_total, order)
        customer_service.revise_spend(state, order, delta)

    return CommandResult(
        reply={"order": _dump(order)},
        audit={"orderId": order.id, "total": order.total, "delta": delta},
    )


@command("order:delete", Capability.STAFF_OR_ADMIN, IdPayload)
def delete_order(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    state = ctx.state
    order = get_order(state, payload.id)
    if order.status == "done":
        raise ValidationError("Cannot delete done order")
    if is_paid(state, order.id):
        raise ValidationError("Cannot delete paid order")

    revenue_service.post(state.revenue, -order.total)
    ctx.metrics.reverse_order(order)
    customer_service.remove_order(state, order)
    state.orders.remove(order)

    logger.debug(f"Order {order.id} deleted by {ctx.caller.display_name}")
    return CommandResult(audit={"orderId": order.id, "total": order.total})


@command("order:setStatus", Capability.STAFF_OR_ADMIN, OrderStatusPayload)
def set_status(ctx: CommandContext, payload: OrderStatusPayload) -> CommandResult:
    """Move an order along new -> preparing -> done.

    Each timestamp is written once. Reaching done for the first time fixes
    the prep time and credits it to the staff member who took the order.
    Skipping preparing is allowed; leaving done is not.
    """
    order = get_order(ctx.state, payload.id)
    status = payload.status
    if order.status == "done" and status != "done":
        raise ValidationError("Cannot change status of done order")

    now = to_iso(ctx.now)
    if status == "preparing":
        if order.acknowledged_at is None:
            order.acknowledged_at = now
        if order.preparing_at is None:
            order.preparing_at = now
    elif status == "done" and order.done_at is None:
        order.done_at = now
        created = parse_iso(order.created_at)
        prep_seconds = max(round((ctx.now - created).total_seconds()), 0) if created else 0
        order.prep_seconds = prep_seconds
        ctx.metrics.record_completion(order, prep_seconds)

    previous = order.status
    order.status = status
    return CommandResult(
        reply={"order": _dump(order)},
        audit={"orderId": order.id, "from": previous, "status": status},
    )
