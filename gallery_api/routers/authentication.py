"""
Authentication router for login and token verification.
"""
import time

from fastapi import APIRouter, Depends, HTTPException, status

from gallery_api.dependencies.auth import require_user
from gallery_api.dependencies.database import get_database
from gallery_api.schemas.user import LoginResponse, UserLogin, UserResponse
from gallery_api.services.database import Database
from gallery_api.structures import Route, public
from gallery_api.utils.logger import log_info, log_warning
from gallery_api.utils.prometheus_metrics import login_duration_seconds, user_login_total
from gallery_api.utils.security import create_access_token, verify_password

router = APIRouter(tags=["Authentication"])


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials.",
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/login", response_model=LoginResponse, summary="Login and get access token")
@public
async def login(
    login_data: UserLogin,
    db: Database = Depends(get_database),
) -> LoginResponse:
    """
    Authenticate with email and password.

    Returns a bearer token valid for three hours together with the user.
    """
    start = time.perf_counter()
    result = "failure"
    try:
        credentials = await db.get_user_by_email(login_data.email)
        if credentials is None or not verify_password(login_data.password, credentials.password):
            log_warning("Login failed", event="auth", reason="invalid_credentials")
            raise _invalid_credentials()

        user = await db.get_user_by_id(credentials.id)
        if user is None:
            log_warning("Login failed", event="auth", reason="missing_metadata", user_id=credentials.id)
            raise _invalid_credentials()

        token = create_access_token(user.id)
        result = "success"
        log_info("Login succeeded", event="auth", user_id=user.id)
        return LoginResponse(token=token, user=user)
    finally:
        user_login_total.labels(result=result).inc()
        login_duration_seconds.labels(result=result).observe(time.perf_counter() - start)


@router.get("/verify", response_model=UserResponse, summary="Verify the bearer token")
async def verify(current_user: UserResponse = Depends(require_user)) -> UserResponse:
    """The user the token belongs to."""
    return current_user


route = Route(path="/authentication", router=router, position=2, middlewares=["auth"])
