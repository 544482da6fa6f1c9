"""Catalog repository - read-only lookups of services.

Catalog management lives outside this service; the booking and membership
domains only need to know that a service exists and what it is called.
"""

from sqlalchemy.orm import Session

from ...models import Service


class CatalogRepository:
    @staticmethod
    def service_exists(db: Session, service_id: int) -> bool:
        return db.query(Service.id).filter(Service.id == service_id).first() is not None

    @staticmethod
    def get_services(db: Session, service_ids: list[int]) -> list[Service]:
        if not service_ids:
            return []
        return db.query(Service).filter(Service.id.in_(service_ids)).all()
