"""Authentication routes."""

import logging
from fastapi import APIRouter, HTTPException, Request, status

from livepos.core.config import settings
from livepos.core.rate_limit import limiter
from livepos.core.rbac import ADMIN_SUBJECT, UserRole
from livepos.core.security import create_access_token, verify_admin_credentials
from livepos.schemas.auth import LoginRequest, StaffInfo, TokenResponse
from livepos.services.staff_service import authenticate_staff

logger = logging.getLogger("auth")

router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/admin", response_model=TokenResponse, response_model_exclude_none=True)
@limiter.limit(settings.login_rate_limit)
def admin_login(request: Request, login_request: LoginRequest):
    """Authenticate the built-in admin account."""
    client_ip = _client_ip(request)
    if not verify_admin_credentials(login_request.username, login_request.password):
        logger.warning(f"Failed admin login for {login_request.username!r} from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    logger.info(f"Successful admin login from IP: {client_ip}")
    token = create_access_token(data={
        "sub": ADMIN_SUBJECT,
        "role": UserRole.ADMIN.value,
        "username": login_request.username,
    })
    return TokenResponse(token=token, role="admin")


@router.post("/staff", response_model=TokenResponse, response_model_exclude_none=True)
@limiter.limit(settings.login_rate_limit)
def staff_login(request: Request, login_request: LoginRequest):
    """Authenticate a staff account stored in the state."""
    client_ip = _client_ip(request)
    store = request.app.state.store
    account = authenticate_staff(store.state, login_request.username, login_request.password)

    if account is None:
        logger.warning(f"Failed staff login for {login_request.username!r} from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if account.status != "active":
        logger.warning(f"Login attempt for paused staff {account.username} (ID: {account.id}) from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account paused",
        )

    logger.info(f"Successful staff login: {account.username} (ID: {account.id}, role: {account.role}) from IP: {client_ip}")
    token = create_access_token(data={
        "sub": account.id,
        "role": UserRole.STAFF.value,
        "username": account.username,
        "staffRole": account.role,
    })
    return TokenResponse(token=token, role="staff", staff=StaffInfo(**account.public()))
