"""Request document asking the backend for a reconciliation tree."""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.filter_engine import active_filters


class FilterSelection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tag: str = Field(alias="Tag")
    values: tuple[str, ...] = Field(default=(), alias="Values")


class DashboardRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tenant_code: str = Field(default="", alias="TenantCode")
    area_ids: tuple[str, ...] = Field(default=(), alias="AreaIds")
    outlet_ids: tuple[str, ...] = Field(default=(), alias="OutletIds")
    business_day: str = Field(default="", alias="BusinessDay")
    topics: tuple[str, ...] = Field(default=(), alias="Topics")
    filters: tuple[FilterSelection, ...] = Field(default=(), alias="Filters")
    dashboard_hierarchy: str = Field(default="", alias="DashboardHierarchy")
    language_code: str = Field(default="en", alias="LanguageCode")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def build_dashboard_request(
    *,
    tenant_code: str,
    area_id: str,
    outlet_id: str,
    business_day: str,
    topics: Sequence[str],
    filter_state: Mapping[str, Sequence[str]],
    hierarchy: Sequence[str],
    language_code: str = "en",
) -> DashboardRequest:
    """Assemble the tree request for the current selection.

    Only filters with at least one selected value are sent, and the hierarchy
    of the selected topic is sent as its level tags joined by ``|``.
    """
    return DashboardRequest(
        tenant_code=tenant_code,
        area_ids=(area_id,) if area_id else (),
        outlet_ids=(outlet_id,) if outlet_id else (),
        business_day=business_day,
        topics=tuple(topics),
        filters=tuple(FilterSelection(tag=tag, values=tuple(values)) for tag, values in active_filters(filter_state)),
        dashboard_hierarchy="|".join(hierarchy),
        language_code=language_code,
    )
