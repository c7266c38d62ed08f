from __future__ import annotations

from typing import Any, Mapping, Optional

OK = "OK"
WARNING = "WARNING"
ERROR = "ERROR"
SKIPPED = "SKIPPED"
ENABLED = "ENABLED"
DISABLED = "DISABLED"


def status_line(status: str, label: str, detail: Optional[str] = None) -> str:
    """Render one doctor check as "Label: STATUS (detail)"."""
    if detail:
        return f"{label}: {status} ({detail})"
    return f"{label}: {status}"


def count_lines(counts: Mapping[str, Any], indent: str = "  ") -> list[str]:
    """Flatten a counts mapping (one level of nesting) into aligned lines."""
    lines: list[str] = []
    for key in counts:
        value = counts[key]
        if isinstance(value, Mapping):
            lines.append(f"{indent}{key}:")
            lines.extend(count_lines(value, indent + "  "))
        else:
            lines.append(f"{indent}{key}: {value}")
    return lines
