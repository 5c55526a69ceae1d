#!/usr/bin/env python3
"""Seed an owner, a customer, an admin and one parking space with a space type.

Prints access tokens for each seeded user so the flow scripts can call the
API without the account service.
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.core.security import create_user_token
from app.database import async_session_maker, init_db
from app.models.parking import ParkingSpace, SpaceType
from app.models.user import User


async def get_or_create_user(session, email: str, full_name: str, role: str) -> User:
    """Return the user with ``email``, creating it if needed."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        user.role = role
        user.is_active = True
        return user

    user = User(email=email, full_name=full_name, role=role, is_active=True)
    session.add(user)
    await session.flush()
    return user


async def seed(
    owner_email: str = "owner@parkspot.in",
    customer_email: str = "customer@parkspot.in",
    admin_email: str = "admin@parkspot.in",
    title: str = "MG Road Multi-level Parking",
    space_type_name: str = "four-wheeler",
    capacity: int = 2,
    price_per_hour: int = 5000,
    instant_booking: bool = False,
    create_tables: bool = False,
) -> None:
    """Seed parking data if it doesn't exist."""
    if create_tables:
        await init_db()

    async with async_session_maker() as session:
        owner = await get_or_create_user(session, owner_email, "Space Owner", "owner")
        customer = await get_or_create_user(session, customer_email, "Test Customer", "customer")
        admin = await get_or_create_user(session, admin_email, "ParkSpot Admin", "admin")

        result = await session.execute(
            select(ParkingSpace).where(
                ParkingSpace.owner_id == owner.id,
                ParkingSpace.title == title,
            )
        )
        space = result.scalar_one_or_none()
        if not space:
            space = ParkingSpace(
                owner_id=owner.id,
                title=title,
                address="MG Road, Bengaluru",
                instant_booking=instant_booking,
                is_active=True,
            )
            session.add(space)
            await session.flush()
            print(f"Created parking space: {title}")
        else:
            space.instant_booking = instant_booking
            print(f"Using existing parking space: {title}")

        result = await session.execute(
            select(SpaceType).where(
                SpaceType.parking_space_id == space.id,
                SpaceType.name == space_type_name,
            )
        )
        space_type = result.scalar_one_or_none()
        if not space_type:
            space_type = SpaceType(
                parking_space_id=space.id,
                name=space_type_name,
                capacity=capacity,
                price_per_hour=price_per_hour,
                currency="INR",
            )
            session.add(space_type)
        else:
            space_type.capacity = capacity
            space_type.price_per_hour = price_per_hour

        await session.commit()

        print(f"Parking space ID: {space.id}")
        print(f"Space type ID:    {space_type.id} ({space_type_name}, capacity {capacity})")
        print()
        for user in (owner, customer, admin):
            token = create_user_token(str(user.id), user.email, user.role)
            print(f"{user.role:<9} {user.email}")
            print(f"  token: {token}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed parking data")
    parser.add_argument("--owner-email", default="owner@parkspot.in", help="Owner email")
    parser.add_argument("--customer-email", default="customer@parkspot.in", help="Customer email")
    parser.add_argument("--admin-email", default="admin@parkspot.in", help="Admin email")
    parser.add_argument("--title", default="MG Road Multi-level Parking", help="Parking space title")
    parser.add_argument("--space-type", default="four-wheeler", help="Space type name")
    parser.add_argument("--capacity", type=int, default=2, help="Units of the space type")
    parser.add_argument("--price-per-hour", type=int, default=5000, help="Price per hour in paise")
    parser.add_argument("--instant-booking", action="store_true", help="Skip owner approval")
    parser.add_argument("--create-tables", action="store_true", help="Create tables first (dev only)")

    args = parser.parse_args()

    asyncio.run(
        seed(
            owner_email=args.owner_email,
            customer_email=args.customer_email,
            admin_email=args.admin_email,
            title=args.title,
            space_type_name=args.space_type,
            capacity=args.capacity,
            price_per_hour=args.price_per_hour,
            instant_booking=args.instant_booking,
            create_tables=args.create_tables,
        )
    )
