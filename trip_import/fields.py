"""
trip_import/fields.py

Canonical trip row fields and the column aliases accepted for them.
Spreadsheets exported by clients use Spanish or English headers with
arbitrary casing and punctuation; rows are mapped onto canonical names
before classification.
"""

from __future__ import annotations

from typing import Any, Mapping

CANONICAL_FIELDS: tuple[str, ...] = (
    "external_id",
    "date",
    "origin",
    "destination",
    "driver",
    "vehicle",
    "units",
    "tariff_type",
)

REQUIRED_FIELDS: tuple[str, ...] = (
    "external_id",
    "date",
    "origin",
    "destination",
)

DEFAULT_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "external_id": ("dt", "trip_id", "numero_dt", "document", "external"),
    "date": ("fecha", "trip_date", "fecha_viaje", "day"),
    "origin": ("origen", "from", "site_origen", "origin_site"),
    "destination": ("destino", "to", "site_destino", "destination_site"),
    "driver": ("chofer", "personal", "personnel", "dni", "driver_id"),
    "vehicle": ("vehiculo", "patente", "plate", "dominio", "truck"),
    "units": ("paletas", "palets", "pallets", "bultos", "quantity"),
    "tariff_type": ("tipo_tramo", "tipotramo", "tipo", "rate_type", "type"),
}


def normalize_header(header: str) -> str:
    """
    Normalize a column name for flexible matching.
    """

    return "".join(ch for ch in header.strip().lower() if ch.isalnum())


def _build_lookup() -> dict[str, str]:
    lookup: dict[str, str] = {}
    for canonical in CANONICAL_FIELDS:
        lookup[normalize_header(canonical)] = canonical
        for alias in DEFAULT_COLUMN_ALIASES.get(canonical, ()):
            lookup.setdefault(normalize_header(alias), canonical)
    return lookup


_HEADER_LOOKUP = _build_lookup()


def canonicalize_row(raw_row: Mapping[str, Any]) -> dict[str, Any]:
    """
    Map a raw row onto canonical field names. Unknown columns are dropped;
    when two columns map to the same field the first non-blank one wins.
    """

    row: dict[str, Any] = {}
    for header, value in raw_row.items():
        canonical = _HEADER_LOOKUP.get(normalize_header(str(header)))
        if canonical is None:
            continue
        if canonical in row and not _is_blank(row[canonical]):
            continue
        row[canonical] = value
    return row


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""
