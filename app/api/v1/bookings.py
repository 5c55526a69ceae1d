"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_current_customer,
    get_current_owner,
    get_current_user,
    get_db,
    require_booking_access,
)
from app.domain.capacity_ledger import TimeWindow
from app.models.user import User
from app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingTransitionResponse,
)
from app.services.booking_service import booking_service

router = APIRouter()


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    current_user: Annotated[User, Depends(get_current_customer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Request a space type for a time window.

    The unit is held until the owner answers and the customer pays, or
    until the hold expires.
    """
    booking = await booking_service.create(
        db,
        customer=current_user,
        space_type_id=request.space_type_id,
        window=TimeWindow(request.start_at, request.end_at),
        vehicle_number=request.vehicle_number,
    )
    return BookingResponse.model_validate(booking)


@router.get("/", response_model=BookingListResponse)
async def list_bookings(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    role: str = Query(default="customer", pattern="^(customer|owner|admin)$"),
    status_filter: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> BookingListResponse:
    """List bookings made by, or made on spaces owned by, the current user."""
    bookings, total = await booking_service.list_for_user(
        db,
        current_user,
        role=role,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(require_booking_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Get booking details."""
    booking = await booking_service.get(db, booking_id)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}/history", response_model=list[BookingTransitionResponse])
async def get_booking_history(
    booking_id: UUID,
    current_user: Annotated[User, Depends(require_booking_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[BookingTransitionResponse]:
    """Get every status change of a booking, oldest first."""
    transitions = await booking_service.history(db, booking_id)
    return [BookingTransitionResponse.model_validate(t) for t in transitions]


@router.put("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_owner)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Owner approves a pending booking request."""
    booking = await booking_service.approve(db, booking_id, current_user.id)
    return BookingResponse.model_validate(booking)


@router.put("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_owner)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Owner rejects a pending booking request."""
    booking = await booking_service.reject(db, booking_id, current_user.id)
    return BookingResponse.model_validate(booking)
