"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

from livepos.core.errors import AuthorizationError

if TYPE_CHECKING:
    from livepos.schemas.state import State


class UserRole(str, Enum):
    """Roles carried in access tokens."""

    ADMIN = "admin"
    STAFF = "staff"


class StaffRole(str, Enum):
    """Sub-role of a staff account."""

    CASHIER = "cashier"
    KITCHEN = "kitchen"
    MANAGER = "manager"


class Capability(str, Enum):
    """What a command requires of its caller."""

    ADMIN_ONLY = "admin-only"
    STAFF_OR_ADMIN = "staff-or-admin"


ADMIN_SUBJECT = "admin"


class Caller:
    """Verified identity of a connected client.

    Attributes:
        role: admin or staff.
        subject: Staff account id, or "admin".
        username: Login name, empty when the token carries none.
        staff_role: Staff sub-role claimed at login (staff callers only).
    """

    def __init__(self, role: UserRole, subject: str, username: str = "",
                 staff_role: Optional[StaffRole] = None):
        self.role = role
        self.subject = subject
        self.username = username
        self.staff_role = staff_role

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        return self.username or self.role.value

    def actor(self) -> Dict[str, Any]:
        """Identity as recorded in audit entries."""
        return {"role": self.role.value, "id": self.subject, "username": self.username}

    def __repr__(self) -> str:
        return f"Caller(role={self.role.value!r}, subject={self.subject!r})"


def caller_from_claims(payload: Optional[Dict[str, Any]]) -> Optional[Caller]:
    """Build a Caller from decoded token claims, or None if they are unusable."""
    if not payload:
        return None

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role:
        return None

    try:
        user_role = UserRole(role)
    except ValueError:
        return None

    staff_role = None
    if user_role == UserRole.STAFF:
        try:
            staff_role = StaffRole(payload.get("staffRole") or StaffRole.CASHIER.value)
        except ValueError:
            staff_role = StaffRole.CASHIER

    return Caller(
        role=user_role,
        subject=str(subject),
        username=payload.get("username") or "",
        staff_role=staff_role,
    )


def authorize(capability: Capability, caller: Optional[Caller], state: "State") -> None:
    """Raise AuthorizationError unless ``caller`` holds ``capability``.

    Staff callers must still exist and be active; the token alone is not
    enough once an admin pauses or deletes the account.
    """
    if caller is None:
        raise AuthorizationError("Auth required")

    if capability == Capability.ADMIN_ONLY:
        if not caller.is_admin:
            raise AuthorizationError("Admin only")
        return

    if caller.is_admin:
        return

    if caller.role != UserRole.STAFF:
        raise AuthorizationError("Auth required")

    account = next((s for s in state.staff if s.id == caller.subject), None)
    if account is None or account.status != "active":
        raise AuthorizationError("Account inactive")
