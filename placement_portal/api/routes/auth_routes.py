"""
Authentication Routes

POST /auth/register - Register a college, company/agency or student account
POST /auth/login - Login and get JWT token
GET /auth/me - Get current user with profile
PUT /auth/password - Change password
"""

from fastapi import APIRouter, Depends

from placement_portal.api.responses import ok, done
from placement_portal.core.auth import get_platform_settings, require
from placement_portal.core.policy import AuthorizationContext
from placement_portal.schemas.schemas import RegisterRequest, LoginRequest, PasswordChangeRequest
from placement_portal.services.auth_service import AuthService
from placement_portal.services.settings_service import PlatformSettings

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, platform: PlatformSettings = Depends(get_platform_settings)):
    """Register a new account. Non-admin accounts wait for approval unless auto-approved."""
    result = AuthService(platform=platform).register(body.model_dump())
    message = result.pop("message")
    return ok(result, message)


@router.post("/login")
async def login(body: LoginRequest):
    """Login with email and password."""
    return ok(AuthService().login(body.email, body.password), "Login successful")


@router.get("/me")
async def get_me(ctx: AuthorizationContext = Depends(require("view_own_account"))):
    """Get the current user and their role profile."""
    return ok(AuthService().me(ctx.actor))


@router.put("/password")
async def change_password(body: PasswordChangeRequest,
                          ctx: AuthorizationContext = Depends(require("change_password"))):
    """Change the current user's password."""
    AuthService().change_password(ctx.actor, body.current_password, body.new_password)
    return done("Password updated successfully")
