from fastapi import APIRouter, Depends, status

from storefront.dependencies import get_address_service
from storefront.domain import Address
from storefront.schemas import AddressCreate, AddressUpdate
from storefront.security import CurrentUser, get_current_user
from storefront.services.addresses import AddressService

router = APIRouter(prefix="/users/me/addresses", tags=["addresses"])


def _serialize_address(address: Address) -> dict:
    return address.model_dump(mode="json", exclude={"user_id"})


# =====================================================
# USER: GET ALL MY ADDRESSES
# =====================================================
@router.get("", status_code=status.HTTP_200_OK)
def get_my_addresses(
    user: CurrentUser = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    """Defaults first, then newest."""
    return [_serialize_address(a) for a in service.list(user.id)]


# =====================================================
# USER: CREATE ADDRESS
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    user: CurrentUser = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    return _serialize_address(service.create(user.id, payload))


# =====================================================
# USER: UPDATE ADDRESS
# =====================================================
@router.patch("/{address_id}", status_code=status.HTTP_200_OK)
def update_address(
    address_id: str,
    payload: AddressUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    changes = payload.model_dump(exclude_unset=True)
    return _serialize_address(service.update(user.id, address_id, changes))


# =====================================================
# USER: DELETE ADDRESS
# =====================================================
@router.delete("/{address_id}", status_code=status.HTTP_200_OK)
def delete_address(
    address_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    service.delete(user.id, address_id)
    return {"message": "Address deleted"}


# =====================================================
# USER: SET DEFAULT ADDRESS
# =====================================================
@router.post("/{address_id}/set-default", status_code=status.HTTP_200_OK)
def set_default_address(
    address_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    return _serialize_address(service.set_default(user.id, address_id))
