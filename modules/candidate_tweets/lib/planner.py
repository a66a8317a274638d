from __future__ import annotations

from .models import RequestSpec, WorkUnit


def build_query(unit: WorkUnit) -> str:
    """Twitter advanced-search expression: author + since/until dates."""
    return f"from:{unit.candidate} since:{unit.start.isoformat()} until:{unit.end.isoformat()}"


def build_request(
    unit: WorkUnit,
    *,
    per_unit_cap: int,
    inflation_multiplier: int = 4,
    add_user_info: bool = True,
) -> RequestSpec:
    """
    Ask the provider for more than we keep: local window filtering discards
    some results, so requested_count = per_unit_cap * inflation_multiplier.
    """
    return RequestSpec(
        query=build_query(unit),
        requested_count=per_unit_cap * inflation_multiplier,
        add_user_info=add_user_info,
    )
