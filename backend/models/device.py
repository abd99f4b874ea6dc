"""Pydantic schemas for brands, devices and their error codes."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, JsonValue, computed_field

from backend.directory.slugs import generate_route_slug


class Brand(BaseModel):
    """A heat pump manufacturer. Its name is the first half of every route slug."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str | None = None
    logo_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Device(BaseModel):
    """A heat pump model, stored in the ``models`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    brand_id: str
    name: str
    description: str | None = None
    specs: JsonValue = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeviceWithBrand(Device):
    """A device joined with its owning brand; ``brand`` is None when the row is missing."""

    brand: Brand | None = None

    @computed_field
    @property
    def route_slug(self) -> str:
        return generate_route_slug(self.brand.name if self.brand else "", self.name)


class ErrorCode(BaseModel):
    """A diagnostic error code. Columns beyond the known ones are kept as-is."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    code: str
    meaning: str | None = None
    description: str | None = None
