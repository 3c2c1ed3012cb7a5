"""
tests/test_trip_csv_parsing.py

CSV upload parsing for trip imports.
"""

from __future__ import annotations

import io

import pytest
from fastapi import UploadFile

from app.services.trip_import_service import TripCSVError, TripImportService


def _upload(content: bytes, filename: str = "trips.csv") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


def test_semicolon_separated_file_with_bom() -> None:
    content = (
        "\ufeffDT;Fecha;Origen;Destino\r\n"
        "T1;10/05/2024;Planta Norte;Depósito Sur\r\n"
        "T2;11/05/2024;Planta Norte;Depósito Sur\r\n"
    ).encode("utf-8")

    rows = TripImportService.parse_csv(_upload(content))

    assert rows == [
        {"DT": "T1", "Fecha": "10/05/2024", "Origen": "Planta Norte", "Destino": "Depósito Sur"},
        {"DT": "T2", "Fecha": "11/05/2024", "Origen": "Planta Norte", "Destino": "Depósito Sur"},
    ]


def test_blank_lines_are_skipped_and_headers_trimmed() -> None:
    content = b" dt , fecha ,origen,destino\nT1,10/05/2024,A,B\n,,,\nT2,11/05/2024,A,B\n"

    rows = TripImportService.parse_csv(_upload(content))

    assert [row["dt"] for row in rows] == ["T1", "T2"]
    assert set(rows[0]) == {"dt", "fecha", "origen", "destino"}


def test_header_only_file_has_no_rows() -> None:
    assert TripImportService.parse_csv(_upload(b"dt,fecha,origen,destino\n")) == []


@pytest.mark.parametrize("content", [b"", b"   \n\n"])
def test_empty_file_is_rejected(content: bytes) -> None:
    with pytest.raises(TripCSVError):
        TripImportService.parse_csv(_upload(content))


def test_non_utf8_file_is_rejected() -> None:
    with pytest.raises(TripCSVError):
        TripImportService.parse_csv(_upload(b"dt,fecha\n\xff\xfe,01/01/2024\n"))
