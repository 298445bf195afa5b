from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from src.infrastructure.db.models import Base, Discount, Route, User, UserPreference
from src.infrastructure.db.session import SessionLocal, engine


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    now = datetime.now(timezone.utc)
    target = now + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_routes(db) -> None:
    route_defs = [
        {
            "name": "Coastal Express",
            "origin": "Lisbon",
            "destination": "Porto",
            "departure_time": _dt(days_from_now=0, hour=8, minute=15),
            "arrival_time": _dt(days_from_now=0, hour=11, minute=0),
            "capacity": 48,
            "base_price": Decimal("50.00"),
        },
        {
            "name": "Mountain Line",
            "origin": "Denver",
            "destination": "Aspen",
            "departure_time": _dt(days_from_now=0, hour=14, minute=30),
            "arrival_time": _dt(days_from_now=0, hour=18, minute=45),
            "capacity": 32,
            "base_price": Decimal("72.50"),
        },
    ]

    for item in route_defs:
        existing = db.execute(
            select(Route).where(Route.name == item["name"])
        ).scalar_one_or_none()
        if existing:
            for key, value in item.items():
                setattr(existing, key, value)
            continue
        db.add(Route(**item))


def seed_users(db) -> None:
    user_defs = [
        {"id": "user-ana", "username": "ana", "email": "ana@example.com", "confirmations": True},
        {"id": "user-ben", "username": "ben", "email": "ben@example.com", "confirmations": False},
    ]

    for item in user_defs:
        user = db.execute(select(User).where(User.id == item["id"])).scalar_one_or_none()
        if not user:
            db.add(User(id=item["id"], username=item["username"], email=item["email"]))

        preference = db.execute(
            select(UserPreference).where(UserPreference.user_id == item["id"])
        ).scalar_one_or_none()
        if preference:
            preference.receive_booking_confirmations = item["confirmations"]
        else:
            db.add(
                UserPreference(
                    user_id=item["id"],
                    receive_booking_confirmations=item["confirmations"],
                    default_payment_method="creditCard",
                )
            )


def seed_discounts(db) -> None:
    today = date.today()
    existing = db.execute(
        select(Discount).where(Discount.code == "SPRING10")
    ).scalar_one_or_none()
    if existing:
        existing.valid_from = today
        existing.valid_to = today + timedelta(days=90)
        existing.is_active = True
        return

    db.add(
        Discount(
            code="SPRING10",
            percentage=Decimal("10.00"),
            valid_from=today,
            valid_to=today + timedelta(days=90),
            is_active=True,
            description="10% off any route",
        )
    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_routes(db)
        seed_users(db)
        seed_discounts(db)
        db.commit()
        print("Seed complete: 2 routes, 2 users with preferences, discount SPRING10 added.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
