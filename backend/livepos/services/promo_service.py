"""Promo codes.

``compute_discount`` is the only place a discount amount is calculated; the
``promo:apply`` preview and ``order:create`` both go through it, so a
preview always matches what the order will get for the same subtotal.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from livepos.core.clock import new_id, parse_iso, to_iso
from livepos.core.errors import NotFoundError, ValidationError
from livepos.core.rbac import Capability
from livepos.schemas.commands import (
    IdPayload,
    PromoApplyPayload,
    PromoCreatePayload,
    PromoUpdatePayload,
)
from livepos.schemas.state import AppliedPromo, Promo, State
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def compute_discount(
    promo_type: str,
    value: float,
    amount: float,
    max_discount: Optional[float] = None,
) -> float:
    """Discount for ``amount`` under the given promo terms.

    Rounded to cents, then capped by ``max_discount`` (when positive) and by
    ``amount`` itself. Never negative.
    """
    if amount <= 0:
        return 0.0
    if promo_type == "percentage":
        raw = _dec(amount) * _dec(value) / 100
    else:
        raw = _dec(value)
    discount = raw.quantize(CENT, rounding=ROUND_HALF_UP)
    if max_discount:
        discount = min(discount, _dec(max_discount))
    discount = min(discount, _dec(amount))
    return float(max(discount, Decimal(0)))


def promo_discount(promo: Promo, amount: float) -> float:
    return compute_discount(promo.type, promo.value, amount, promo.max_discount)


def find_by_code(state: State, code: str) -> Optional[Promo]:
    wanted = code.strip().lower()
    return next((p for p in state.promos if p.code.lower() == wanted), None)


def find_redeemable(state: State, code: str, now: datetime) -> Promo:
    """Return the active, unexpired, under-limit promo for ``code``.

    Raises ValidationError with the reason otherwise.
    """
    promo = find_by_code(state, code)
    if promo is None or not promo.is_active:
        raise ValidationError("Invalid promo code")

    expiry = parse_iso(promo.expiry_date)
    if expiry is not None and expiry < now:
        raise ValidationError("Promo code expired")

    if promo.max_uses and promo.uses >= promo.max_uses:
        raise ValidationError("Promo code limit reached")

    return promo


def redeem(promo: Promo, subtotal: float) -> AppliedPromo:
    """Count one use of ``promo`` and snapshot its terms for the order."""
    discount = promo_discount(promo, subtotal)
    promo.uses += 1
    return AppliedPromo(
        id=promo.id,
        code=promo.code,
        type=promo.type,
        value=promo.value,
        max_discount=promo.max_discount,
        discount=discount,
    )


def _check_expiry(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if parse_iso(value) is None:
        raise ValidationError("expiryDate must be an ISO date")
    return value


def _check_code_free(state: State, code: str, exclude_id: Optional[str] = None) -> None:
    existing = find_by_code(state, code)
    if existing is not None and existing.id != exclude_id:
        raise ValidationError("Promo code already exists")


def _get_promo(ctx: CommandContext, promo_id: str) -> Promo:
    promo = ctx.state.find_promo(promo_id)
    if promo is None:
        raise NotFoundError("Promo", promo_id)
    return promo


@command("promo:create", Capability.ADMIN_ONLY, PromoCreatePayload)
def create_promo(ctx: CommandContext, payload: PromoCreatePayload) -> CommandResult:
    code = payload.code.strip()
    if not code:
        raise ValidationError("code is required")
    _check_code_free(ctx.state, code)
    expiry = _check_expiry(payload.expiry_date)

    promo = Promo(
        id=new_id(),
        code=code.upper(),
        type=payload.type,
        value=payload.value,
        expiry_date=expiry,
        max_uses=payload.max_uses or None,
        max_discount=payload.max_discount or None,
        created_at=to_iso(ctx.now),
    )
    ctx.state.promos.append(promo)
    data = promo.model_dump(by_alias=True)
    return CommandResult(reply={"promo": data}, audit={"promo": data})


@command("promo:update", Capability.ADMIN_ONLY, PromoUpdatePayload)
def update_promo(ctx: CommandContext, payload: PromoUpdatePayload) -> CommandResult:
    promo = _get_promo(ctx, payload.id)

    code = None
    if payload.code is not None:
        code = payload.code.strip()
        if not code:
            raise ValidationError("code is required")
        _check_code_free(ctx.state, code, exclude_id=promo.id)
    expiry = _check_expiry(payload.expiry_date) if payload.provided("expiry_date") else None

    if code is not None:
        promo.code = code.upper()
    if payload.type is not None:
        promo.type = payload.type
    if payload.value is not None:
        promo.value = payload.value
    if payload.provided("expiry_date"):
        promo.expiry_date = expiry
    if payload.provided("max_uses"):
        promo.max_uses = payload.max_uses or None
    if payload.provided("max_discount"):
        promo.max_discount = payload.max_discount or None
    if payload.is_active is not None:
        promo.is_active = payload.is_active

    data = promo.model_dump(by_alias=True)
    return CommandResult(
        reply={"promo": data},
        audit={"id": promo.id, "updates": payload.model_dump(by_alias=True, exclude_unset=True, exclude={"id"})},
    )


@command("promo:delete", Capability.ADMIN_ONLY, IdPayload)
def delete_promo(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    promo = _get_promo(ctx, payload.id)
    ctx.state.promos.remove(promo)
    return CommandResult(audit={"id": promo.id, "code": promo.code})


@command("promo:apply", Capability.STAFF_OR_ADMIN, PromoApplyPayload, mutates=False)
def apply_promo(ctx: CommandContext, payload: PromoApplyPayload) -> CommandResult:
    """Preview the discount a code would give on ``orderTotal``."""
    promo = find_redeemable(ctx.state, payload.code, ctx.now)
    discount = promo_discount(promo, payload.order_total)
    return CommandResult(reply={"promo": promo.model_dump(by_alias=True), "discount": discount})
