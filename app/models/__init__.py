"""Database models."""

from app.models.booking import Booking, BookingTransition
from app.models.parking import ParkingSpace, SpaceType
from app.models.payment import Payment
from app.models.user import User

__all__ = [
    # User
    "User",
    # Parking
    "ParkingSpace",
    "SpaceType",
    # Booking
    "Booking",
    "BookingTransition",
    # Payment
    "Payment",
]
