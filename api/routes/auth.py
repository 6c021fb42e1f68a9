"""Auth — hosted auth access token verification + role checks"""
import logging
import uuid
import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.config import get_settings
from dashboard.db.session import get_session
from dashboard.db.models import User
from dashboard.rbac.permissions import has_permission, get_user_permissions, role_name
from dashboard.utils.formatters import user_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

JWT_ALGO = "HS256"


def decode_access_token(token: str) -> dict | None:
    """Verify a hosted auth access token, return its claims or None"""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[JWT_ALGO],
            audience=settings.jwt_audience,
        )
    except jwt.PyJWTError as e:
        logger.info(f"Rejected access token: {e}")
        return None


def _parse_uuid(value: str) -> str | None:
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError):
        return None


async def get_current_user(
    authorization: str | None = Header(None),
    dev_user_id: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> User:
    settings = get_settings()
    user_id = None

    if authorization and authorization.lower().startswith("bearer "):
        claims = decode_access_token(authorization[7:].strip())
        if not claims:
            raise HTTPException(401, "Invalid or expired token")
        user_id = _parse_uuid(claims.get("sub"))
    elif dev_user_id and settings.allow_dev_auth:
        user_id = _parse_uuid(dev_user_id)

    if not user_id:
        raise HTTPException(401, "Not authenticated")

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(401, "User profile not found")
    return user


def require_permission(permission: str):
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, permission):
            raise HTTPException(403, f"Permission denied: {permission}")
        return user
    return dependency


@router.get("/current-user")
async def current_user(user: User = Depends(require_permission("dashboard.view"))):
    return {
        "user": {
            **user_out(user),
            "role_name": role_name(user.role),
        },
        "permissions": get_user_permissions(user.role),
    }
