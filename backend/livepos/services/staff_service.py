"""Staff account management and staff login lookup."""

import logging
from typing import Optional

from livepos.core.clock import new_id, to_iso
from livepos.core.errors import NotFoundError, ValidationError
from livepos.core.rbac import Capability
from livepos.core.security import get_password_hash, verify_password
from livepos.schemas.commands import (
    IdPayload,
    StaffCreatePayload,
    StaffRolePayload,
    StaffStatusPayload,
)
from livepos.schemas.state import StaffAccount, State
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)


def find_by_username(state: State, username: str) -> Optional[StaffAccount]:
    """Exact (case-sensitive) username match, as used at login."""
    return next((s for s in state.staff if s.username == username), None)


def authenticate_staff(state: State, username: str, password: str) -> Optional[StaffAccount]:
    """Return the account when the password matches, else None.

    Paused accounts are returned too; the caller decides how to reject them.
    """
    account = find_by_username(state, username)
    if account is None or not verify_password(password, account.password_hash):
        return None
    return account


def _get_staff(ctx: CommandContext, staff_id: str) -> StaffAccount:
    account = ctx.state.find_staff(staff_id)
    if account is None:
        raise NotFoundError("Staff", staff_id)
    return account


@command("staff:create", Capability.ADMIN_ONLY, StaffCreatePayload)
def create_staff(ctx: CommandContext, payload: StaffCreatePayload) -> CommandResult:
    wanted = payload.username.lower()
    if any(s.username.lower() == wanted for s in ctx.state.staff):
        raise ValidationError("Username already exists")

    account = StaffAccount(
        id=new_id(),
        username=payload.username,
        password_hash=get_password_hash(payload.password),
        role=payload.role,
        created_at=to_iso(ctx.now),
    )
    ctx.state.staff.append(account)
    logger.info(f"Staff account {account.username} created with role {account.role}")
    public = account.public()
    return CommandResult(reply={"staff": public}, audit={"staff": public})


@command("staff:setStatus", Capability.ADMIN_ONLY, StaffStatusPayload)
def set_staff_status(ctx: CommandContext, payload: StaffStatusPayload) -> CommandResult:
    account = _get_staff(ctx, payload.id)
    account.status = payload.status
    return CommandResult(audit={"id": account.id, "status": account.status})


@command("staff:setRole", Capability.ADMIN_ONLY, StaffRolePayload)
def set_staff_role(ctx: CommandContext, payload: StaffRolePayload) -> CommandResult:
    account = _get_staff(ctx, payload.id)
    account.role = payload.role
    return CommandResult(audit={"id": account.id, "role": account.role})


@command("staff:delete", Capability.ADMIN_ONLY, IdPayload)
def delete_staff(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    """Delete an account. Its past orders and metrics keep the id."""
    account = _get_staff(ctx, payload.id)
    ctx.state.staff.remove(account)
    logger.info(f"Staff account {account.username} deleted")
    return CommandResult(audit={"id": account.id, "username": account.username})
