"""Report output: JSON, CSV and plain-text tables.

Usage:
    write_json(report, "rbac.json", pretty=True)
    write_csv(report["assignments"], "rbac.csv")
    print(render_table(rows, ["name", "location"]))
    export_report(report, "rbac.csv", fmt="csv")
"""

import csv
import io
import json
from pathlib import Path
from typing import Any, Iterable

from azlab.resources.tags import format_tags

FORMATS = ("json", "csv", "text")

#: Which key of each report holds its row list
ROWS_KEYS = {
    "rbac_audit":  "assignments",
    "rightsizing": "recommendations",
    "inventory":   "resources",
}


def to_json(data: Any, pretty: bool = False) -> str:
    return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)


def write_json(data: Any, path: str, pretty: bool = True) -> None:
    _write(path, to_json(data, pretty))


def write_text(text: str, path: str) -> None:
    _write(path, text if text.endswith("\n") else text + "\n")


def to_csv(rows: list[dict], fields: list[str] | None = None) -> str:
    fields = fields or _fields_of(rows)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fields, extrasaction="ignore",
                            lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({f: _cell(f, row.get(f)) for f in fields})
    return buffer.getvalue()


def write_csv(rows: list[dict], path: str, fields: list[str] | None = None) -> None:
    _write(path, to_csv(rows, fields))


def render_table(rows: list[dict], fields: list[str] | None = None) -> str:
    """Left-aligned plain-text table; ``(no rows)`` when empty."""
    if not rows:
        return "(no rows)"
    fields = fields or _fields_of(rows)
    cells = [[_cell(f, row.get(f)) for f in fields] for row in rows]
    widths = [max(len(f), *(len(c[i]) for c in cells)) for i, f in enumerate(fields)]

    def line(values: Iterable[str]) -> str:
        return "  ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    out = [line(fields), line("-" * w for w in widths)]
    out.extend(line(c) for c in cells)
    return "\n".join(out)


def render_report(report: dict, fields: list[str] | None = None) -> str:
    """Text rendering of a report: header, flattened summary, then the rows table."""
    out = [f"{report.get('report_type', 'report')}  ({report.get('generated_at', '')})", ""]
    for key, value in report.get("summary", {}).items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items()) or "-"
        elif isinstance(value, list):
            value = ", ".join(
                f"{v.get('principal_name', v)} ({v.get('assignments', '')})"
                if isinstance(v, dict) else str(v)
                for v in value
            ) or "-"
        out.append(f"{key}: {value}")
    out.append("")
    out.append(render_table(report_rows(report), fields))
    return "\n".join(out)


def report_rows(report: dict) -> list[dict]:
    key = ROWS_KEYS.get(report.get("report_type", ""))
    if key is None:
        raise ValueError(f"Unknown report type '{report.get('report_type')}'")
    return report.get(key, [])


def export_report(report: dict, path: str, fmt: str = "json", pretty: bool = True) -> None:
    """Write *report* to *path*: the whole dict as JSON, or its rows as CSV / text."""
    if fmt == "json":
        write_json(report, path, pretty)
    elif fmt == "csv":
        write_csv(report_rows(report), path)
    elif fmt == "text":
        write_text(render_report(report), path)
    else:
        raise ValueError(f"Unknown format '{fmt}'. Choose from: {', '.join(FORMATS)}")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _fields_of(rows: list[dict]) -> list[str]:
    fields: list[str] = []
    for row in rows:
        fields.extend(k for k in row if k not in fields)
    return fields


def _cell(field: str, value: Any) -> str:
    if value is None:
        return ""
    if field == "tags" and isinstance(value, dict):
        return format_tags(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _write(path: str, text: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
