"""Payments and printable receipts."""

import logging
from datetime import tzinfo
from typing import Any, Dict

from livepos.core.clock import new_id, parse_iso, to_iso
from livepos.core.errors import ValidationError
from livepos.core.rbac import Capability
from livepos.schemas.commands import ReceiptCreatePayload, ReceiptPreviewPayload
from livepos.schemas.state import Order, Receipt, Settings
from livepos.services.order_service import get_order, is_paid
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

RECEIPT_WIDTH = 40
RECEIPT_TITLE = "RECEIPT"


def compute_charges(order: Order, settings: Settings) -> Dict[str, Any]:
    """Tax and service charge, both on the discounted amount."""
    taxable = order.subtotal - order.discount
    tax = taxable * settings.tax_percent / 100
    service = taxable * settings.service_charge_percent / 100
    return {
        "subtotal": order.subtotal,
        "discount": order.discount,
        "taxableAmount": taxable,
        "taxPercent": settings.tax_percent,
        "tax": tax,
        "serviceChargePercent": settings.service_charge_percent,
        "serviceCharge": service,
        "grandTotal": taxable + tax + service,
        "currency": settings.currency,
    }


def _amount_row(label: str, amount: float, currency: str) -> str:
    value = f"{amount:.2f} {currency}"
    return f"{label}{value.rjust(RECEIPT_WIDTH - len(label))}"


def render_receipt(order: Order, charges: Dict[str, Any], tz: tzinfo) -> str:
    """Fixed-width text receipt for a thermal printer or a preview pane."""
    currency = charges["currency"]
    rule, double_rule = "-" * RECEIPT_WIDTH, "=" * RECEIPT_WIDTH
    created = parse_iso(order.created_at)
    when = created.astimezone(tz).strftime("%Y-%m-%d %H:%M") if created else order.created_at

    lines = [
        double_rule,
        RECEIPT_TITLE.center(RECEIPT_WIDTH),
        double_rule,
        "",
        f"Order #{order.id[:8].upper()}",
        f"Date: {when}",
        f"Table: {order.table_number}",
        f"Staff: {order.created_by_username or 'Staff'}",
        rule,
    ]
    for line in order.items:
        lines.append(_amount_row(line.name[:24], line.line_total, currency))
        lines.append(f"  {line.qty} x {line.price:.2f}")
    lines.append(rule)
    lines.append(_amount_row("Subtotal", charges["subtotal"], currency))
    if charges["discount"]:
        label = f"Discount ({order.promo.code})" if order.promo else "Discount"
        lines.append(_amount_row(label, -charges["discount"], currency))
    if charges["tax"]:
        lines.append(_amount_row(f"Tax ({charges['taxPercent']:g}%)", charges["tax"], currency))
    if charges["serviceCharge"]:
        lines.append(_amount_row(f"Service ({charges['serviceChargePercent']:g}%)",
                                 charges["serviceCharge"], currency))
    lines += [
        double_rule,
        _amount_row("TOTAL", charges["grandTotal"], currency),
        double_rule,
        "",
        "Thank you for your visit!",
    ]
    return "\n".join(lines)


@command("receipt:create", Capability.STAFF_OR_ADMIN, ReceiptCreatePayload)
def create_receipt(ctx: CommandContext, payload: ReceiptCreatePayload) -> CommandResult:
    """Record payment of an order.

    The receipt amount is the order total as posted to the ledger; an order
    can only be paid once.
    """
    state = ctx.state
    order = get_order(state, payload.order_id)
    if is_paid(state, order.id):
        raise ValidationError("Order already paid")

    receipt = Receipt(
        id=new_id(),
        order_id=order.id,
        payment_method=payload.payment_method,
        amount=order.total,
        note=payload.note,
        created_at=to_iso(ctx.now),
        created_by=ctx.caller.display_name,
    )
    state.receipts.insert(0, receipt)
    ctx.metrics.record_payment(receipt.payment_method, receipt.amount)

    data = receipt.model_dump(by_alias=True)
    return CommandResult(
        reply={"receipt": data},
        audit={"receiptId": receipt.id, "orderId": order.id,
               "paymentMethod": receipt.payment_method, "amount": receipt.amount},
    )


@command("receipt:preview", Capability.STAFF_OR_ADMIN, ReceiptPreviewPayload, mutates=False)
def preview_receipt(ctx: CommandContext, payload: ReceiptPreviewPayload) -> CommandResult:
    order = get_order(ctx.state, payload.order_id)
    charges = compute_charges(order, ctx.state.settings)
    preview = render_receipt(order, charges, ctx.store.tz)
    return CommandResult(reply={"preview": preview, "charges": charges})
