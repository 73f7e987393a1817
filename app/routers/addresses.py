# app/routers/addresses.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_user
from app.database import get_session
from app.models.user import User
from app.repositories.address_repo import AddressRepository
from app.schemas.address import AddressCreate, AddressRead, AddressUpdate
from app.services.address_service import AddressService

router = APIRouter(prefix="/addresses", tags=["Addresses"])

address_repo = AddressRepository()
service = AddressService(address_repo)


@router.get("", response_model=list[AddressRead])
def list_my_addresses(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    city: str | None = None,
    state: str | None = None,
    postal_code: str | None = None,
):
    """
    List the current shopper's address book, default first.
    """
    return service.list_addresses(
        session,
        current_user.id,
        city=city,
        state=state,
        postal_code=postal_code,
    )


@router.post("", response_model=AddressRead, status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Add an address. The shopper's first address becomes the default.
    """
    return service.create_address(session, current_user.id, payload)


@router.get("/{address_id}", response_model=AddressRead)
def get_address(
    address_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.get_address(session, current_user.id, address_id)


@router.patch("/{address_id}", response_model=AddressRead)
def update_address(
    address_id: uuid.UUID,
    payload: AddressUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Partial update. Orders already placed keep their shipping snapshot.
    """
    return service.update_address(session, current_user.id, address_id, payload)


@router.post("/{address_id}/default", response_model=AddressRead)
def set_default_address(
    address_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Make this the only default address of the shopper.
    """
    return service.set_default(session, current_user.id, address_id)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_address(
    address_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    service.delete_address(session, current_user.id, address_id)
