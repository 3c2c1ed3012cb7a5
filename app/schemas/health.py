"""
app/schemas/health.py

Health check response schema.
"""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    scheduler_enabled: bool
