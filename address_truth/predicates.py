"""Named pure predicates over city truth rows, used to build category tabs."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, Optional

from .config import TabThresholds
from .models import CityTruthRow, Segment


class RollupTab(str, Enum):
    ALL = "ALL"
    CAND = "CAND"
    TECH_CLUSTERS = "TECH_CLUSTERS"
    MID_MARKET_INDIE = "MID_MARKET_INDIE"
    MEGA_CITIES = "MEGA_CITIES"
    CORP_AGG = "CORP_AGG"
    FRANCHISE = "FRANCHISE"

    @classmethod
    def parse(cls, value: str) -> "RollupTab":
        try:
            return cls(value.strip().upper().replace("-", "_"))
        except ValueError:
            choices = ", ".join(tab.value for tab in cls)
            raise ValueError(f"Unknown tab {value!r}; expected one of: {choices}") from None


Predicate = Callable[[CityTruthRow, TabThresholds], bool]


def _segment_count(row: CityTruthRow, segment: Segment) -> int:
    return (row.seg_summary or {}).get(segment.value, 0)


PREDICATES: dict[RollupTab, Predicate] = {
    RollupTab.ALL: lambda row, t: True,
    RollupTab.CAND: lambda row, t: row.cand_count > 0,
    # regCount>0 keeps license-only cities out of density tabs.
    RollupTab.TECH_CLUSTERS: lambda row, t: row.reg_count > 0 and row.tech_count >= t.tech_cluster_min_tech,
    RollupTab.MID_MARKET_INDIE: lambda row, t: (
        row.reg_count > 0 and t.mid_market_min_tech <= row.tech_count <= t.mid_market_max_tech
    ),
    RollupTab.MEGA_CITIES: lambda row, t: row.reg_count >= t.mega_city_min_reg,
    RollupTab.CORP_AGG: lambda row, t: _segment_count(row, Segment.CORP_OWNED) > 0,
    RollupTab.FRANCHISE: lambda row, t: _segment_count(row, Segment.CORP_FRANCHISE) > 0,
}


def tab_predicate(tab: RollupTab, row: CityTruthRow, thresholds: Optional[TabThresholds] = None) -> bool:
    return PREDICATES[tab](row, thresholds or TabThresholds())


def filter_city_rows(
    tab: RollupTab,
    rows: Iterable[CityTruthRow],
    thresholds: Optional[TabThresholds] = None,
) -> list[CityTruthRow]:
    thresholds = thresholds or TabThresholds()
    predicate = PREDICATES[tab]
    return [row for row in rows if predicate(row, thresholds)]


def tab_counts(rows: Iterable[CityTruthRow], thresholds: Optional[TabThresholds] = None) -> dict[str, int]:
    thresholds = thresholds or TabThresholds()
    materialized = list(rows)
    return {
        tab.value: sum(1 for row in materialized if predicate(row, thresholds))
        for tab, predicate in PREDICATES.items()
    }
