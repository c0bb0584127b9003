from fastapi import APIRouter, Depends, status

from reservations.cache import invalidate_slots_cache
from reservations.crud import venue_crud
from reservations.deps import can_read_venues, can_write_venues
from reservations.errors import VENUE_NOT_FOUND, NotFoundError
from reservations.schemas import (
    Page,
    PageParams,
    VenueCreate,
    VenueNameCheck,
    VenueResponse,
    VenueUpdate,
)

router = APIRouter(
    prefix="/venues", tags=["venues"], dependencies=[Depends(can_read_venues)]
)
admin_router = APIRouter(
    prefix="/admin/venues", tags=["admin"], dependencies=[Depends(can_write_venues)]
)


# ---------------------------------------------------------------------------
# Catalog (read)
# ---------------------------------------------------------------------------


@router.get("/", response_model=Page[VenueResponse])
async def list_venues(params: PageParams = Depends()) -> Page[VenueResponse]:
    return await venue_crud.list_venues(params)


@router.get("/check-name", response_model=VenueNameCheck)
async def check_venue_name(name: str, exclude_id: int | None = None) -> VenueNameCheck:
    """Whether `name` is free for a new venue (or for venue `exclude_id`)."""
    available = await venue_crud.name_available(name, exclude_id=exclude_id)
    return VenueNameCheck(name=name, available=available)


@router.get("/by-name/{name}", response_model=VenueResponse)
async def get_venue_by_name(name: str) -> VenueResponse:
    venue = await venue_crud.find_by_name(name)
    if venue is None:
        raise NotFoundError(VENUE_NOT_FOUND)
    return VenueResponse.model_validate(venue, from_attributes=True)


@router.get("/{venue_id}", response_model=VenueResponse)
async def get_venue(venue_id: int) -> VenueResponse:
    venue = await venue_crud.find_by_id(venue_id)
    if venue is None:
        raise NotFoundError(VENUE_NOT_FOUND)
    return VenueResponse.model_validate(venue, from_attributes=True)


# ---------------------------------------------------------------------------
# Catalog (admin)
# ---------------------------------------------------------------------------


@admin_router.post(
    "/", response_model=VenueResponse, status_code=status.HTTP_201_CREATED
)
async def create_venue(payload: VenueCreate) -> VenueResponse:
    return await venue_crud.create(payload)


@admin_router.put("/{venue_id}", response_model=VenueResponse)
async def update_venue(venue_id: int, payload: VenueUpdate) -> VenueResponse:
    return await venue_crud.update(venue_id, payload)


@admin_router.delete("/{venue_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_venue(venue_id: int) -> None:
    await venue_crud.delete(venue_id)
    await invalidate_slots_cache(venue_id)
