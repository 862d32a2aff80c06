"""Static tenant -> area -> outlet configuration used by the selection pickers."""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import logger


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)


class Outlet(_ConfigModel):
    outlet_id: str = Field(alias="OutletId")
    outlet_code: str = Field(default="", alias="OutletCode")
    outlet_name: str = Field(default="", alias="OutletName")


class Area(_ConfigModel):
    area_id: str = Field(alias="AreaId")
    area_code: str = Field(default="", alias="AreaCode")
    area_name: str = Field(default="", alias="AreaName")
    outlets: tuple[Outlet, ...] = Field(default=(), alias="Outlets")


class Tenant(_ConfigModel):
    tenant_id: str = Field(alias="TenantId")
    tenant_code: str = Field(default="", alias="TenantCode")
    tenant_name: str = Field(default="", alias="TenantName")
    areas: tuple[Area, ...] = Field(default=(), alias="Areas")


class TenantDirectory:
    """Lookup helpers over the configured tenants. Ids are compared as strings."""

    def __init__(self, tenants: tuple[Tenant, ...] = ()) -> None:
        self.tenants = tenants

    @classmethod
    def from_payload(cls, payload: Any) -> "TenantDirectory":
        raw = payload.get("Tenants", []) if isinstance(payload, dict) else []
        return cls(tuple(Tenant.model_validate(item) for item in raw or []))

    @classmethod
    def load(cls, path: str) -> "TenantDirectory":
        """Read the tenants file; a missing or malformed file yields an empty directory."""
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
            return cls.from_payload(payload)
        except FileNotFoundError:
            logger.warning("Tenants config not found", path=path)
        except (json.JSONDecodeError, ValidationError):
            logger.exception("Failed to parse tenants config", path=path)
        return cls()

    def tenant(self, tenant_id: Optional[str]) -> Optional[Tenant]:
        return next((t for t in self.tenants if t.tenant_id == str(tenant_id)), None)

    def areas(self, tenant_id: Optional[str]) -> tuple[Area, ...]:
        tenant = self.tenant(tenant_id)
        return tenant.areas if tenant else ()

    def area(self, tenant_id: Optional[str], area_id: Optional[str]) -> Optional[Area]:
        return next((a for a in self.areas(tenant_id) if a.area_id == str(area_id)), None)

    def outlets(self, tenant_id: Optional[str], area_id: Optional[str]) -> tuple[Outlet, ...]:
        area = self.area(tenant_id, area_id)
        return area.outlets if area else ()

    def outlet(self, tenant_id: Optional[str], area_id: Optional[str], outlet_id: Optional[str]) -> Optional[Outlet]:
        return next((o for o in self.outlets(tenant_id, area_id) if o.outlet_id == str(outlet_id)), None)

    def outlets_of_area(self, area_id: str) -> tuple[Outlet, ...]:
        """Outlets of an area regardless of tenant (area ids are globally unique)."""
        for tenant in self.tenants:
            for area in tenant.areas:
                if area.area_id == str(area_id):
                    return area.outlets
        return ()

    def tenant_code(self, tenant_id: Optional[str]) -> str:
        tenant = self.tenant(tenant_id)
        return tenant.tenant_code if tenant else ""

    def reconcile_selection(self, tenant_id: str, area_id: str, outlet_id: str) -> tuple[str, str, str]:
        """Clear an area or outlet that does not belong to the selected parent.

        Returns:
            Tuple of (tenant_id, area_id, outlet_id) with stale entries blanked.
        """
        if tenant_id and area_id and self.area(tenant_id, area_id) is None:
            area_id, outlet_id = "", ""
        if area_id and outlet_id and self.outlet(tenant_id, area_id, outlet_id) is None:
            outlet_id = ""
        return tenant_id, area_id, outlet_id
