from __future__ import annotations

import json
from typing import Optional

from ..app import AddressTruthApp
from ..models import CityTruthRow
from ..predicates import RollupTab, filter_city_rows, tab_counts
from ..store import rows_from_document
from ..truth import run_truth_build
from .output import count_lines


def build(app: AddressTruthApp) -> None:
    report = run_truth_build(app.store, app.layout, app.settings, app.brands)
    summary = report.summary()
    print(f"Address truth: {summary['addresses']} rows -> {report.address_path}")
    print(f"City truth: {summary['cities']} rows -> {report.city_path}")
    for line in count_lines(summary["sources"]):
        print(line)
    print(f"Receipt: {report.receipt_path}")


def tabs(app: AddressTruthApp, *, tab: Optional[str] = None, json_output: bool = False) -> None:
    doc = app.store.require(app.layout.city_truth, "city truth document")
    rows = [CityTruthRow.from_record(record) for record in rows_from_document(doc)]
    thresholds = app.settings.tabs
    if tab is None:
        counts = tab_counts(rows, thresholds)
        if json_output:
            print(json.dumps(counts, indent=2))
            return
        for name, count in counts.items():
            print(f"{name}: {count}")
        return
    selected = filter_city_rows(RollupTab.parse(tab), rows, thresholds)
    if json_output:
        print(json.dumps([row.to_record() for row in selected], indent=2, sort_keys=True))
        return
    if not selected:
        print("No cities in this tab.")
        return
    for row in selected:
        print(
            f"{row.city_label} [{row.city_key}] reg={row.reg_count} tech={row.tech_count} "
            f"addr={row.addr_count} cand={row.cand_count}"
        )
