"""
Users router: administration and password changes.
"""
import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from gallery_api.dependencies.auth import require_admin, require_user
from gallery_api.dependencies.database import get_database
from gallery_api.middlewares.rate_limit_middleware import limiter
from gallery_api.models import UserCredentials, UserMetadata
from gallery_api.models.base import utcnow
from gallery_api.schemas.user import (
    PasswordUpdate,
    UserCreate,
    UserCreated,
    UserList,
    UserResponse,
)
from gallery_api.services.database import Database, DuplicateNameError
from gallery_api.structures import Route
from gallery_api.utils.logger import log_info, log_warning
from gallery_api.utils.security import generate_password, hash_password, verify_password

router = APIRouter(tags=["Users"])

INITIAL_PASSWORD_LENGTH = 16
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 64


@router.get("", response_model=UserList, summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    db: Database = Depends(get_database),
    _: UserResponse = Depends(require_admin),
) -> UserList:
    """Users sorted by first name."""
    count = await db.get_user_count()
    users = await db.get_users_sorted(skip=(page - 1) * limit, limit=limit)
    return UserList(data=users, count=count, pages=math.ceil(count / limit))


@router.post(
    "",
    response_model=UserCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
@limiter.limit("5/second")
async def create_user(
    request: Request,
    user_data: UserCreate,
    db: Database = Depends(get_database),
    admin: UserResponse = Depends(require_admin),
) -> UserCreated:
    """
    Create a user with a generated password.

    The generated password is returned once in ``initial_password``; only its
    bcrypt hash is stored.
    """
    if await db.get_user_by_email(user_data.email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already created.")

    password = generate_password(INITIAL_PASSWORD_LENGTH)
    now = utcnow()
    metadata = UserMetadata(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
        avatar="",
        created_at=now,
        modified_at=now,
    )
    credentials = UserCredentials(
        email=user_data.email,
        password=hash_password(password),
        created_at=now,
        modified_at=now,
    )

    try:
        user = await db.insert_user(metadata, credentials)
    except DuplicateNameError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already created.")

    log_info("User created", event="users", user_id=user.id, role=user.role, created_by=admin.id)
    return UserCreated(**user.model_dump(), initial_password=password)


@router.get("/@me", response_model=UserResponse, summary="Current user")
async def get_me(current_user: UserResponse = Depends(require_user)) -> UserResponse:
    return current_user


@router.post("/{user_id}/password/update", summary="Change a password")
async def update_password(
    user_id: str,
    body: PasswordUpdate,
    db: Database = Depends(get_database),
    current_user: UserResponse = Depends(require_user),
) -> dict:
    """
    Change a password after checking the current one.

    ``@me`` or the caller's own id; administrators may target any user.
    """
    target_id = current_user.id if user_id == "@me" else user_id
    if target_id != current_user.id and current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own password.")

    if not body.password or not body.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid body provided")
    if body.password == body.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Passwords have to be different")

    credentials = await db.get_user_credentials(target_id)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="The user you are looking for does not exist.",
        )

    if not verify_password(body.password, credentials.password):
        log_warning("Password change rejected", event="users", user_id=target_id, reason="wrong_password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")

    if not PASSWORD_MIN_LENGTH <= len(body.new_password) <= PASSWORD_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must have {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters",
        )

    await db.update_user_credentials(
        target_id,
        {"password": hash_password(body.new_password), "modified_at": utcnow()},
    )
    log_info("Password changed", event="users", user_id=target_id)
    return {"message": "The password was changed successfully"}


route = Route(path="/users", router=router, position=1, middlewares=["auth"])
