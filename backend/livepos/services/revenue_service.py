"""Revenue ledger.

``revenue.total`` only ever moves by an exact delta: order handlers call
``post`` with the change in an order's total, and admins record manual
adjustments. Nothing recomputes it from the order list.
"""

import logging
from typing import Optional

from livepos.core.clock import new_id, to_iso
from livepos.core.rbac import Capability
from livepos.schemas.commands import EmptyPayload, RevenueAdjustPayload
from livepos.schemas.state import RevenueAdjustment, RevenueLedger
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

RESET_REASON = "RESET"


def post(ledger: RevenueLedger, delta: float) -> None:
    """Apply an order-driven change to the running total."""
    ledger.total += delta


def _adjustment(ctx: CommandContext, amount: float, reason: str,
                previous_total: Optional[float] = None) -> RevenueAdjustment:
    return RevenueAdjustment(
        id=new_id(),
        amount=amount,
        reason=reason,
        ts=to_iso(ctx.now),
        by=ctx.caller.display_name,
        previous_total=previous_total,
    )


@command("revenue:reset", Capability.ADMIN_ONLY, EmptyPayload)
def reset_revenue(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    """Zero the ledger; the old balance is kept on the RESET adjustment."""
    ledger = ctx.state.revenue
    previous = ledger.total
    ledger.total = 0
    ledger.adjustments.insert(0, _adjustment(ctx, 0, RESET_REASON, previous_total=previous))
    logger.info(f"Revenue reset by {ctx.caller.display_name} (previous total {previous:.2f})")
    return CommandResult(audit={"previousTotal": previous})


@command("revenue:adjust", Capability.ADMIN_ONLY, RevenueAdjustPayload)
def adjust_revenue(ctx: CommandContext, payload: RevenueAdjustPayload) -> CommandResult:
    ledger = ctx.state.revenue
    adjustment = _adjustment(ctx, payload.amount, payload.reason)
    ledger.total += payload.amount
    ledger.adjustments.insert(0, adjustment)
    return CommandResult(
        reply={"total": ledger.total},
        audit={"amount": payload.amount, "reason": payload.reason},
    )
