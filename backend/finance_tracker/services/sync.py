from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass
class SyncResult:
    fixed_expense: dict[str, Any]
    created: bool


def derive_fixed_fields(variable: Mapping[str, Any]) -> dict[str, Any]:
    """Fields a fixed expense takes over from the variable expense it mirrors."""
    return {
        "name": variable["description"],
        "amount": variable["amount"],
        "month": variable["month"],
    }


def clone_fields(fixed: Mapping[str, Any], to_month: str) -> dict[str, Any]:
    # clones are plain copies, never sync links
    return {
        "name": fixed["name"],
        "amount": fixed["amount"],
        "month": to_month,
        "origin_id": None,
    }
