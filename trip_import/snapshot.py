"""
trip_import/snapshot.py

Read-only view of an owner's reference data for one classification pass.

Source spreadsheets are inconsistent about casing and accents ("Córdoba",
"CORDOBA ", "cordoba"), so every index is keyed by normalize_key().
A fresh snapshot is fetched for every pass; nothing here is cached globally.
"""

from __future__ import annotations

import re
import unicodedata
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from tariffs.base import TariffType

_WHITESPACE = re.compile(r"\s+")


def normalize_key(value: object) -> str:
    """
    Lower-case, strip accents and collapse whitespace.

    >>> normalize_key("  Córdoba   Centro ")
    'cordoba centro'
    """

    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(char for char in text if not unicodedata.combining(char))
    return _WHITESPACE.sub(" ", text).strip().casefold()


def normalize_plate(value: object) -> str:
    """Plates are compared without separators: 'AB 123-CD' == 'ab123cd'."""
    return re.sub(r"[\s\-\.]", "", normalize_key(value))


@dataclass(frozen=True)
class SiteRef:
    id: uuid.UUID
    name: str


@dataclass(frozen=True)
class PersonnelRef:
    id: uuid.UUID
    identifier: str
    full_name: str | None = None


@dataclass(frozen=True)
class VehicleRef:
    id: uuid.UUID
    plate: str


@dataclass(frozen=True)
class RouteRef:
    id: uuid.UUID
    origin_site_id: uuid.UUID
    destination_site_id: uuid.UUID
    distance_km: float | None = None
    tariff_types: frozenset[TariffType] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ReferenceData:
    """Raw reference records as returned by a provider."""

    sites: tuple[SiteRef, ...] = ()
    personnel: tuple[PersonnelRef, ...] = ()
    vehicles: tuple[VehicleRef, ...] = ()
    routes: tuple[RouteRef, ...] = ()


class ReferenceDataProvider(Protocol):
    """Must return every active reference record for the owner."""

    def snapshot(self, owner_id: uuid.UUID) -> ReferenceData:
        ...


@dataclass(frozen=True)
class ReferenceSnapshot:
    sites_by_name: Mapping[str, SiteRef]
    personnel_by_identifier: Mapping[str, PersonnelRef]
    vehicles_by_plate: Mapping[str, VehicleRef]
    routes_by_origin_destination: Mapping[tuple[uuid.UUID, uuid.UUID], RouteRef]

    @classmethod
    def build(
        cls,
        *,
        sites: Iterable[SiteRef] = (),
        personnel: Iterable[PersonnelRef] = (),
        vehicles: Iterable[VehicleRef] = (),
        routes: Iterable[RouteRef] = (),
    ) -> ReferenceSnapshot:
        # First occurrence wins on normalised-key collisions.
        sites_by_name: dict[str, SiteRef] = {}
        for site in sites:
            sites_by_name.setdefault(normalize_key(site.name), site)

        personnel_by_identifier: dict[str, PersonnelRef] = {}
        for person in personnel:
            personnel_by_identifier.setdefault(normalize_key(person.identifier), person)
            if person.full_name:
                personnel_by_identifier.setdefault(normalize_key(person.full_name), person)

        vehicles_by_plate: dict[str, VehicleRef] = {}
        for vehicle in vehicles:
            vehicles_by_plate.setdefault(normalize_plate(vehicle.plate), vehicle)

        routes_by_pair: dict[tuple[uuid.UUID, uuid.UUID], RouteRef] = {}
        for route in routes:
            routes_by_pair.setdefault((route.origin_site_id, route.destination_site_id), route)

        return cls(
            sites_by_name=sites_by_name,
            personnel_by_identifier=personnel_by_identifier,
            vehicles_by_plate=vehicles_by_plate,
            routes_by_origin_destination=routes_by_pair,
        )

    @classmethod
    def from_reference_data(cls, data: ReferenceData) -> ReferenceSnapshot:
        return cls.build(
            sites=data.sites,
            personnel=data.personnel,
            vehicles=data.vehicles,
            routes=data.routes,
        )

    def find_site(self, name: object) -> SiteRef | None:
        return self.sites_by_name.get(normalize_key(name))

    def find_personnel(self, identifier: object) -> PersonnelRef | None:
        return self.personnel_by_identifier.get(normalize_key(identifier))

    def find_vehicle(self, plate: object) -> VehicleRef | None:
        return self.vehicles_by_plate.get(normalize_plate(plate))

    def find_route(self, origin_id: uuid.UUID, destination_id: uuid.UUID) -> RouteRef | None:
        return self.routes_by_origin_destination.get((origin_id, destination_id))
