from __future__ import annotations

from typing import Optional

from ..app import AddressTruthApp
from .output import count_lines


def run(app: AddressTruthApp, *, address_keys: Optional[list[str]] = None, limit: Optional[int] = None) -> None:
    report = app.sweep_runner().run(address_keys=address_keys, limit=limit)
    provider = report.provider
    print(f"Swept {report.processed} address(es) in {provider['mode']} mode -> {report.path}")
    if report.missing_synthesized:
        print(f"  {report.missing_synthesized} requested key(s) not in address truth; placeholder rows added")
    for line in count_lines(report.counts):
        print(line)
    if provider.get("lastError"):
        print(f"  last provider error: {provider['lastError']}")
    for item in report.errors:
        print(f"  note: {item}")
    print(f"sha256: {report.sha256}")
    print(f"Receipt: {report.receipt_path}")
