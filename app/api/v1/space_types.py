"""Space type availability endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.core.exceptions import ValidationError
from app.domain.capacity_ledger import TimeWindow
from app.schemas.booking import AvailabilityResponse
from app.services.booking_service import booking_service

router = APIRouter()


@router.get("/{space_type_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    space_type_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_at: datetime = Query(...),
    end_at: datetime = Query(...),
) -> AvailabilityResponse:
    """Free units of a space type across a window."""
    try:
        window = TimeWindow(start_at, end_at)
    except ValueError as e:
        raise ValidationError(str(e))

    availability = await booking_service.availability(db, space_type_id, window)
    return AvailabilityResponse(**availability)
