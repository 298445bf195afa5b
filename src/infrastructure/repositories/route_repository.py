# src/infrastructure/repositories/route_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Route
from src.domain.exceptions import RouteNotFoundError


class RouteRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, route_id: str) -> Route | None:
        return self.db.execute(
            select(Route).where(Route.id == route_id)
        ).scalar_one_or_none()

    def require(self, route_id: str) -> Route:
        route = self.get_by_id(route_id)
        if not route:
            raise RouteNotFoundError(route_id)
        return route
