"""User administration API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from gotta_listen.admin.schemas import (
    BanRequest,
    RoleUpdate,
    UserAdminResponse,
    UserUpdateAdmin,
)
from gotta_listen.admin.service import AdminService, get_admin_service
from gotta_listen.dependencies import CurrentAdmin, get_db

router = APIRouter()


def get_service(
    db: Annotated[Session, Depends(get_db)],
    admin: CurrentAdmin,  # Ensures only admins can access
) -> AdminService:
    """Get admin service dependency (admin only)."""
    return get_admin_service(db, admin)


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="User not found",
    )


@router.get("/users", response_model=list[UserAdminResponse])
def list_users(
    service: Annotated[AdminService, Depends(get_service)],
):
    """List all users.

    Args:
        service: Admin service.

    Returns:
        list[UserAdminResponse]: All users.
    """
    return service.list_users()


@router.get("/users/{user_id}", response_model=UserAdminResponse)
def get_user(
    user_id: str,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Get a single user.

    Raises:
        HTTPException: If user not found.
    """
    user = service.get_user(user_id)
    if not user:
        raise _not_found()
    return service.to_response(user)


@router.put("/users/{user_id}", response_model=UserAdminResponse)
def update_user(
    user_id: str,
    data: UserUpdateAdmin,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Update a user.

    Args:
        user_id: User UUID.
        data: Update data.
        service: Admin service.

    Returns:
        UserAdminResponse: Updated user.

    Raises:
        HTTPException: If user not found or the update is refused.
    """
    try:
        user = service.update_user(user_id, data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    if not user:
        raise _not_found()
    return service.to_response(user)


@router.put("/users/{user_id}/role", response_model=UserAdminResponse)
def set_role(
    user_id: str,
    data: RoleUpdate,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Grant or revoke admin rights.

    Raises:
        HTTPException: If user not found or the admin demotes themselves.
    """
    try:
        user = service.set_admin(user_id, data.is_admin)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    if not user:
        raise _not_found()
    return service.to_response(user)


@router.post("/users/{user_id}/ban", response_model=UserAdminResponse)
def ban_user(
    user_id: str,
    data: BanRequest,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Ban a user; their sessions stop working immediately.

    Args:
        user_id: User UUID.
        data: Ban duration and IP ban flag.
        service: Admin service.

    Returns:
        UserAdminResponse: Banned user.

    Raises:
        HTTPException: If user not found or the admin bans themselves.
    """
    try:
        user = service.ban_user(user_id, data.duration_days, data.ip_ban)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    if not user:
        raise _not_found()
    return service.to_response(user)


@router.post("/users/{user_id}/unban", response_model=UserAdminResponse)
def unban_user(
    user_id: str,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Lift a user's ban.

    Raises:
        HTTPException: If user not found.
    """
    user = service.unban_user(user_id)
    if not user:
        raise _not_found()
    return service.to_response(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    service: Annotated[AdminService, Depends(get_service)],
):
    """Delete a user and their sessions.

    Raises:
        HTTPException: If user not found or the admin deletes themselves.
    """
    try:
        deleted = service.delete_user(user_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    if not deleted:
        raise _not_found()
