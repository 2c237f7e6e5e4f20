from typing import List
from fastapi import APIRouter, Depends, Response, status

from norruva.core.dependencies import get_current_user, get_user_service
from norruva.db.schema import User
from norruva.models.user import UserCreate, UserProfileUpdate, UserRead, UserUpdate
from norruva.services.user import UserService

router = APIRouter()


@router.get("/me", response_model=UserRead, summary="Current User")
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/{user_id}/profile", response_model=UserRead, summary="Update Own Profile")
def update_profile(
    user_id: str,
    payload: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    """Users may only edit their own profile; Admins may edit anyone's."""
    return service.update_profile(current_user, user_id, payload)


# ==========================================================================
# ADMINISTRATION
# ==========================================================================

@router.get("/", response_model=List[UserRead], summary="List Users")
def list_users(
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.list_users(current_user)


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED, summary="Create User")
def create_user(
    payload: UserCreate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.create_user(current_user, payload)


@router.patch("/{user_id}", response_model=UserRead, summary="Update User")
def update_user(
    user_id: str,
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.update_user(current_user, user_id, payload)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete User")
def delete_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    service.delete_user(current_user, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
