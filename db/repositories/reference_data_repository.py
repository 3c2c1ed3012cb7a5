"""
Reference data repository: sites, personnel, vehicles and routes per owner.

Serves as the ReferenceDataProvider for import passes and as the write path
for correction data supplied by operators.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.personnel import Personnel
from db.models.route import Route
from db.models.site import Site
from db.models.tariff_record import TariffRecordModel
from db.models.vehicle import Vehicle
from db.repositories.errors import ReferenceNotFoundError
from tariffs.base import TariffType
from trip_import.errors import ReferenceDataUnavailable
from trip_import.snapshot import (
    PersonnelRef,
    ReferenceData,
    RouteRef,
    SiteRef,
    VehicleRef,
    normalize_key,
    normalize_plate,
)

logger = logging.getLogger(__name__)


class ReferenceDataRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # ReferenceDataProvider
    # ------------------------------------------------------------------

    def snapshot(self, owner_id: uuid.UUID) -> ReferenceData:
        """Every active reference record of the owner."""
        try:
            sites = self._session.scalars(
                select(Site)
                .where(Site.owner_id == owner_id, Site.is_active.is_(True))
                .order_by(Site.created_at, Site.id)
            ).all()
            personnel = self._session.scalars(
                select(Personnel)
                .where(Personnel.owner_id == owner_id, Personnel.is_active.is_(True))
                .order_by(Personnel.created_at, Personnel.id)
            ).all()
            vehicles = self._session.scalars(
                select(Vehicle)
                .where(Vehicle.owner_id == owner_id, Vehicle.is_active.is_(True))
                .order_by(Vehicle.created_at, Vehicle.id)
            ).all()
            routes = self._session.scalars(
                select(Route)
                .where(Route.owner_id == owner_id, Route.is_active.is_(True))
                .order_by(Route.created_at, Route.id)
            ).all()
            type_rows = self._session.execute(
                select(TariffRecordModel.route_id, TariffRecordModel.tariff_type)
                .join(Route, Route.id == TariffRecordModel.route_id)
                .where(Route.owner_id == owner_id)
                .distinct()
            ).all()
        except SQLAlchemyError as exc:
            raise ReferenceDataUnavailable(
                f"Reference data for owner {owner_id} could not be loaded."
            ) from exc

        types_by_route: dict[uuid.UUID, set[TariffType]] = {}
        for route_id, tariff_type in type_rows:
            types_by_route.setdefault(route_id, set()).add(TariffType(tariff_type))

        logger.debug(
            "Reference snapshot owner_id=%s sites=%s personnel=%s vehicles=%s routes=%s",
            owner_id,
            len(sites),
            len(personnel),
            len(vehicles),
            len(routes),
        )
        return ReferenceData(
            sites=tuple(SiteRef(id=site.id, name=site.name) for site in sites),
            personnel=tuple(
                PersonnelRef(id=person.id, identifier=person.identifier, full_name=person.full_name)
                for person in personnel
            ),
            vehicles=tuple(VehicleRef(id=vehicle.id, plate=vehicle.plate) for vehicle in vehicles),
            routes=tuple(
                RouteRef(
                    id=route.id,
                    origin_site_id=route.origin_site_id,
                    destination_site_id=route.destination_site_id,
                    distance_km=route.distance_km,
                    tariff_types=frozenset(types_by_route.get(route.id, ())),
                )
                for route in routes
            ),
        )

    # ------------------------------------------------------------------
    # Correction data
    # ------------------------------------------------------------------

    def add_sites(self, owner_id: uuid.UUID, names: Sequence[str]) -> list[SiteRef]:
        """Create sites whose normalised name is not already taken."""
        existing = {
            normalize_key(name)
            for name in self._session.scalars(select(Site.name).where(Site.owner_id == owner_id))
        }
        created: list[Site] = []
        for name in names:
            key = normalize_key(name)
            if not key or key in existing:
                continue
            existing.add(key)
            created.append(Site(owner_id=owner_id, name=name.strip()))
        self._session.add_all(created)
        self._session.flush()
        return [SiteRef(id=site.id, name=site.name) for site in created]

    def add_personnel(
        self,
        owner_id: uuid.UUID,
        people: Sequence[tuple[str, str | None]],
    ) -> list[PersonnelRef]:
        existing = {
            normalize_key(identifier)
            for identifier in self._session.scalars(
                select(Personnel.identifier).where(Personnel.owner_id == owner_id)
            )
        }
        created: list[Personnel] = []
        for identifier, full_name in people:
            key = normalize_key(identifier)
            if not key or key in existing:
                continue
            existing.add(key)
            created.append(
                Personnel(owner_id=owner_id, identifier=identifier.strip(), full_name=full_name)
            )
        self._session.add_all(created)
        self._session.flush()
        return [
            PersonnelRef(id=person.id, identifier=person.identifier, full_name=person.full_name)
            for person in created
        ]

    def add_vehicles(self, owner_id: uuid.UUID, plates: Sequence[str]) -> list[VehicleRef]:
        existing = {
            normalize_plate(plate)
            for plate in self._session.scalars(select(Vehicle.plate).where(Vehicle.owner_id == owner_id))
        }
        created: list[Vehicle] = []
        for plate in plates:
            key = normalize_plate(plate)
            if not key or key in existing:
                continue
            existing.add(key)
            created.append(Vehicle(owner_id=owner_id, plate=plate.strip().upper()))
        self._session.add_all(created)
        self._session.flush()
        return [VehicleRef(id=vehicle.id, plate=vehicle.plate) for vehicle in created]

    def add_route(
        self,
        owner_id: uuid.UUID,
        *,
        origin_site_id: uuid.UUID,
        destination_site_id: uuid.UUID,
        distance_km: float | None = None,
    ) -> RouteRef:
        """Create a route, or return the existing one for the same site pair."""
        route = self._session.scalars(
            select(Route).where(
                Route.owner_id == owner_id,
                Route.origin_site_id == origin_site_id,
                Route.destination_site_id == destination_site_id,
            )
        ).first()
        if route is None:
            for site_id in (origin_site_id, destination_site_id):
                site = self._session.get(Site, site_id)
                if site is None or site.owner_id != owner_id:
                    raise ReferenceNotFoundError(f"Site not found: {site_id}")
            route = Route(
                owner_id=owner_id,
                origin_site_id=origin_site_id,
                destination_site_id=destination_site_id,
                distance_km=distance_km,
            )
            self._session.add(route)
            self._session.flush()
        return RouteRef(
            id=route.id,
            origin_site_id=route.origin_site_id,
            destination_site_id=route.destination_site_id,
            distance_km=route.distance_km,
        )
