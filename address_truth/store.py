from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Optional

from .models import MissingInputError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def dumps(doc: Any) -> str:
    return json.dumps(doc, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


@dataclass(frozen=True, slots=True)
class DataLayout:
    """Relative names of every logical document under the data root."""

    facility_source: str = "sources/facilities.json"
    license_source: str = "sources/licensees.json"
    address_truth: str = "truth/address_truth.json"
    city_truth: str = "truth/city_truth.json"
    seeds_dir: str = "facilities/seeds"
    facility_index: str = "facilities/facility_index.json"
    sweep_candidates: str = "sweep/address_sweep_candidates.json"
    adjudications: str = "sweep/address_sweep_adjudications.json"
    sweep_effective: str = "sweep/address_sweep_effective.json"
    receipts_dir: str = "receipts"

    def seed_log(self, file_name: str) -> str:
        return f"{self.seeds_dir}/{file_name}"


class DocumentStore:
    """
    JSON document store rooted at a directory.

    Documents are read and replaced whole. Writes go to a temporary file in
    the target directory and are renamed into place, so readers never see a
    partially written document.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._lock = Lock()

    def path(self, name: str) -> Path:
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path(name).exists()

    def read(self, name: str) -> Optional[Any]:
        path = self.path(name)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def require(self, name: str, what: str = "document") -> Any:
        path = self.path(name)
        if not path.exists():
            raise MissingInputError(path, what)
        return self.read(name)

    def replace(self, name: str, doc: Any) -> Path:
        return self._write_text(self.path(name), dumps(doc))

    def read_lines(self, name: str) -> list[str]:
        path = self.path(name)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as fh:
            return [line.strip() for line in fh if line.strip()]

    def replace_lines(self, name: str, lines: Iterable[str]) -> Path:
        text = "".join(f"{line}\n" for line in lines)
        return self._write_text(self.path(name), text)

    def list_names(self, prefix: str, suffix: str = "") -> list[str]:
        directory = self.path(prefix)
        if not directory.is_dir():
            return []
        names = sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and entry.name.endswith(suffix)
        )
        return [f"{prefix}/{name}" for name in names]

    def write_receipt(self, receipts_dir: str, kind: str, payload: dict[str, Any]) -> Path:
        stamp = now_iso().replace(":", "-").replace(".", "-")
        name = f"{receipts_dir}/{kind}_{stamp}.json"
        path = self.replace(name, payload)
        logger.debug("Wrote %s receipt to %s", kind, path)
        return path

    def _write_text(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise
        return path


def rows_from_document(doc: Any) -> list[dict]:
    """Accept a bare row list or an envelope carrying rows/data/items."""
    if doc is None:
        return []
    if isinstance(doc, list):
        return [row for row in doc if isinstance(row, dict)]
    if isinstance(doc, dict):
        for key in ("rows", "data", "items"):
            value = doc.get(key)
            if isinstance(value, list):
                return [row for row in value if isinstance(row, dict)]
    return []
