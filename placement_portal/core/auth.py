"""
Authentication Utility - JWT and Password handling.

Provides:
- Password hashing with bcrypt
- JWT token creation/verification
- FastAPI dependencies for protected routes:
    get_current_user      -> Actor (active accounts only)
    get_platform_settings -> PlatformSettings held on app.state
    require("operation")  -> AuthorizationContext that passed the policy
"""

from datetime import timedelta
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext

from placement_portal.core.config import get_settings
from placement_portal.core.errors import AuthenticationError
from placement_portal.core.policy import Actor, AuthorizationContext, authorize
from placement_portal.services.mongo_service import UserRepository
from placement_portal.services.settings_service import PlatformSettings, SettingsService
from placement_portal.utils.timeutils import utcnow

settings = get_settings()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token extractor; missing headers are reported by us as 401
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        async def route(actor: Actor = Depends(get_current_user)):
            return actor
    """
    if credentials is None:
        raise AuthenticationError("Not authorized. No token provided.")

    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = ObjectId(payload["sub"])
    except (InvalidId, TypeError):
        raise AuthenticationError("Invalid or expired token")

    user = UserRepository().find_one(None, {"_id": user_id})
    if not user:
        raise AuthenticationError("User not found")

    # Active gate, checked once per request
    if not user.get("is_active", True):
        raise AuthenticationError("Account is deactivated. Please contact support.")

    return Actor.from_user(user)


def get_platform_settings(request: Request) -> PlatformSettings:
    """Settings loaded at startup; loaded here on first use if startup was skipped."""
    current = getattr(request.app.state, "platform_settings", None)
    if current is None:
        current = SettingsService().load()
        request.app.state.platform_settings = current
    return current


def require(operation_name: str):
    """
    Dependency factory - authenticate, then run the policy for one operation.

    Usage:
        @router.get("/students")
        async def route(ctx: AuthorizationContext = Depends(require("list_students"))):
            ...
    """

    async def dependency(
        include_deleted: bool = Query(False, description="Super admin only: include soft-deleted records"),
        actor: Actor = Depends(get_current_user),
        platform: PlatformSettings = Depends(get_platform_settings),
    ) -> AuthorizationContext:
        ctx = AuthorizationContext(actor=actor, include_deleted=include_deleted)
        authorize(ctx, operation_name, platform)
        return ctx

    return dependency
