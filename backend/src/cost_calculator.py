"""
cost_calculator.py — Move-in cost estimate for a parsed listing.

Rent, management fee, deposit and key money come from the listing; the remaining
items are typical market rates and are flagged as estimates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final, Mapping

from backend.src.listing_parser import PropertyRecord


DEFAULT_COSTS: Final[Mapping[str, float]] = MappingProxyType(
    {
        "brokerage_fee_rate": 1.1,  # 仲介手数料 = 家賃 × 1.1（税込）
        "guarantee_fee_rate": 0.5,  # 保証会社 = 家賃 × 0.5
        "fire_insurance": 18000,  # 火災保険（2年）
        "key_exchange": 16500,
    }
)


@dataclass(frozen=True)
class CostItem:
    label: str
    amount: int
    is_estimate: bool
    note: str | None = None


@dataclass(frozen=True)
class InitialCostBreakdown:
    items: list[CostItem] = field(default_factory=list)
    total: int = 0
    estimated_total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [
                {"label": i.label, "amount": i.amount, "is_estimate": i.is_estimate, "note": i.note}
                for i in self.items
            ],
            "total": self.total,
            "estimated_total": self.estimated_total,
        }


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def calculate_initial_costs(record: PropertyRecord) -> InitialCostBreakdown:
    rent = int(record.rent)
    items: list[CostItem] = [CostItem("前家賃（1ヶ月分）", rent, False)]

    if record.management_fee > 0:
        items.append(CostItem("前管理費・共益費（1ヶ月分）", int(record.management_fee), False))

    items.append(CostItem("敷金", int(record.deposit), False, "なし" if record.deposit == 0 else None))
    items.append(CostItem("礼金", int(record.key_money), False, "なし" if record.key_money == 0 else None))

    items.append(
        CostItem("仲介手数料", _round_half_up(rent * DEFAULT_COSTS["brokerage_fee_rate"]), True, "家賃×1.1（税込）")
    )
    items.append(
        CostItem("保証会社利用料", _round_half_up(rent * DEFAULT_COSTS["guarantee_fee_rate"]), True, "家賃×0.5")
    )
    items.append(CostItem("火災保険料（2年）", int(DEFAULT_COSTS["fire_insurance"]), True))
    items.append(CostItem("鍵交換費用", int(DEFAULT_COSTS["key_exchange"]), True))

    return InitialCostBreakdown(
        items=items,
        total=sum(i.amount for i in items),
        estimated_total=sum(i.amount for i in items if i.is_estimate),
    )


_RECORD_NUMERIC_FIELDS: Final[tuple[str, ...]] = ("rent", "management_fee", "deposit", "key_money")
_CAMEL_ALIASES: Final[Mapping[str, str]] = MappingProxyType(
    {"managementFee": "management_fee", "keyMoney": "key_money"}
)


def record_from_payload(payload: Mapping[str, Any]) -> PropertyRecord:
    """Build the cost-relevant part of a PropertyRecord from an API payload (snake_case or camelCase)."""
    values: dict[str, int] = {}
    for key, raw in payload.items():
        name = _CAMEL_ALIASES.get(key, key)
        if name not in _RECORD_NUMERIC_FIELDS:
            continue
        try:
            values[name] = int(float(raw or 0))
        except (TypeError, ValueError):
            values[name] = 0
    return PropertyRecord(**values)
