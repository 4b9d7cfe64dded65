from __future__ import annotations

from pydantic import BaseModel, Field


class VersionCheckRequest(BaseModel):
    client_version: str = Field(alias="clientVersion", min_length=1)

    model_config = {"populate_by_name": True}


class CompatibilityCheck(BaseModel):
    compatible: bool
    service_version: str
    client_version: str
    warnings: list[str] | None = None
