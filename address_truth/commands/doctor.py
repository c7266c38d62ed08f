from __future__ import annotations

from dataclasses import dataclass

from ..app import AddressTruthApp
from ..config import Settings
from ..providers.validation import validate_places_provider
from ..store import rows_from_document
from ..sweep.discovery import MODE_LIVE
from .output import DISABLED, ENABLED, ERROR, OK, SKIPPED, WARNING, status_line


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks: list[str]


def _document_line(app: AddressTruthApp, label: str, name: str, required: bool) -> tuple[bool, str]:
    path = app.store.path(name)
    if not app.store.exists(name):
        if required:
            return False, status_line(ERROR, label, f"missing {path}")
        return True, status_line(WARNING, label, f"missing {path}")
    try:
        rows = rows_from_document(app.store.read(name))
    except ValueError as exc:
        return False, status_line(ERROR, label, f"unreadable {path}: {exc}")
    return True, status_line(OK, label, f"{len(rows)} row(s)")


def run(
    settings: Settings,
    *,
    validate_providers_online: bool = False,
) -> DoctorReport:
    checks: list[str] = []
    ok = True

    app = AddressTruthApp.create(settings)
    try:
        root = settings.data.root
        if root.is_dir():
            checks.append(status_line(OK, "Data root", str(root)))
        else:
            ok = False
            checks.append(status_line(ERROR, "Data root", f"missing: {root}"))

        layout = app.layout
        for label, name, required in (
            ("Facility source", layout.facility_source, True),
            ("License source", layout.license_source, True),
            ("Address truth", layout.address_truth, False),
            ("City truth", layout.city_truth, False),
        ):
            line_ok, line = _document_line(app, label, name, required)
            ok = ok and line_ok
            checks.append(line)

        seed_logs = app.facilities().seed_logs()
        if app.store.exists(layout.facility_index):
            directory = app.facilities().load_directory()
            detail = f"{len(directory)} facilities from {len(seed_logs)} seed log(s)"
            checks.append(status_line(OK, "Facility directory", detail))
        elif seed_logs:
            detail = f"not built; {len(seed_logs)} seed log(s) (run `facilities rebuild`)"
            checks.append(status_line(WARNING, "Facility directory", detail))
        else:
            checks.append(status_line(SKIPPED, "Facility directory", "no seed logs"))

        diag = app.discovery.diagnostics
        if diag.mode == MODE_LIVE:
            checks.append(status_line(ENABLED, "Places provider", f"key {diag.api_key_hint}"))
        else:
            detail = "set providers.google_maps_api_key; sweeps run in stub mode"
            checks.append(status_line(DISABLED, "Places provider", detail))

        source = settings.brands.registry_path or "built-in"
        if len(app.brands):
            checks.append(status_line(OK, "Brand registry", f"{len(app.brands)} rule(s) from {source}"))
        else:
            checks.append(status_line(WARNING, "Brand registry", f"no rules in {source}"))

        adjudications = app.adjudications().items()
        checks.append(status_line(OK, "Adjudications", f"{len(adjudications)} recorded"))

        if validate_providers_online:
            try:
                validate_places_provider(settings.providers)
                checks.append(status_line(OK, "Places provider (network)"))
            except RuntimeError as exc:
                ok = False
                checks.append(status_line(ERROR, "Places provider (network)", str(exc)))
        else:
            checks.append(status_line(SKIPPED, "Places provider (network)", "pass --providers"))
    finally:
        app.close()

    return DoctorReport(ok=ok, checks=checks)
