"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import (
    bookings,
    notifications,
    payments,
    space_types,
    webhooks,
)

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Space types
api_router.include_router(space_types.router, prefix="/space-types", tags=["Space Types"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
