from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from ..app import AddressTruthApp
from ..facilities import FORMAT_JSONL, parse_seed_text
from .output import count_lines


def _read_rows(path: Path, fmt: str, brand: Optional[str], category: Optional[str], source: Optional[str]):
    defaults = {
        key: value
        for key, value in (("brand", brand), ("category", category), ("source", source))
        if value
    }
    text = path.read_text(encoding="utf-8")
    return parse_seed_text(text, fmt, defaults)


def preview(
    app: AddressTruthApp,
    path: Path,
    *,
    fmt: str = FORMAT_JSONL,
    brand: Optional[str] = None,
    category: Optional[str] = None,
    source: Optional[str] = None,
    json_output: bool = False,
) -> None:
    rows = _read_rows(path, fmt, brand, category, source)
    result = app.facilities().preview(rows)
    if json_output:
        print(json.dumps(result.to_record(), indent=2, sort_keys=True))
        return
    print("Preview:")
    for line in count_lines(result.counts()):
        print(line)
    for row in result.invalid:
        print(f"  invalid: {row.problem} {row.seed.raw or row.seed.to_record()}")


def commit(
    app: AddressTruthApp,
    path: Path,
    *,
    fmt: str = FORMAT_JSONL,
    brand: Optional[str] = None,
    category: Optional[str] = None,
    source: Optional[str] = None,
    seed_log: Optional[str] = None,
    note: Optional[str] = None,
) -> None:
    rows = _read_rows(path, fmt, brand, category, source)
    receipt = app.facilities().commit(rows, seed_log=seed_log, note=note, fmt=fmt)
    print(f"Committed to {receipt.seed_log}:")
    for line in count_lines(receipt.counts()):
        print(line)
    print(f"Receipt: {receipt.receipt_path}")


def rebuild(app: AddressTruthApp) -> None:
    directory = app.facilities().rebuild()
    print(f"Facility directory: {len(directory)} facilities from {directory.seed_files} seed log(s)")
