from __future__ import annotations

import json
from typing import Any, Iterable, Sequence

from .models import Comparison, Difference, Severity, utc_now_iso

FORMATS = ("table", "json", "markdown")

_MAX_VALUE_WIDTH = 40


def _filtered(comparisons: Iterable[Comparison], only_breaking: bool) -> list[Comparison]:
    if not only_breaking:
        return list(comparisons)
    return [c for c in comparisons if c.breaking]


def _visible(comparison: Comparison, only_breaking: bool) -> tuple[Difference, ...]:
    return comparison.breaking if only_breaking else comparison.differences


def summarize(comparisons: Sequence[Comparison]) -> dict[str, int]:
    out = {
        "endpoints": len(comparisons),
        "changed": sum(1 for c in comparisons if c.has_changes),
    }
    for severity in Severity:
        out[severity.value] = sum(len(c.by_severity(severity)) for c in comparisons)
    return out


def _fmt_value(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False) if not isinstance(value, str) else value
    if len(text) > _MAX_VALUE_WIDTH:
        text = text[: _MAX_VALUE_WIDTH - 3] + "..."
    return text


def _change_text(diff: Difference) -> str:
    if diff.has_old_value and diff.has_new_value:
        return f"{_fmt_value(diff.old_value)} -> {_fmt_value(diff.new_value)}"
    if diff.has_old_value:
        return f"was {_fmt_value(diff.old_value)}"
    if diff.has_new_value:
        return f"now {_fmt_value(diff.new_value)}"
    return ""


def render_table(comparisons: Sequence[Comparison], *, details: bool = False, only_breaking: bool = False) -> str:
    shown = _filtered(comparisons, only_breaking)
    rows = [("ENDPOINT", "BREAKING", "NON-BREAKING", "INFO")]
    for comparison in shown:
        counts = comparison.counts()
        rows.append(
            (
                comparison.endpoint,
                str(counts[Severity.BREAKING.value]),
                str(counts[Severity.NON_BREAKING.value]),
                str(counts[Severity.INFORMATIONAL.value]),
            )
        )
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in rows]

    if details:
        for comparison in shown:
            diffs = _visible(comparison, only_breaking)
            if not diffs:
                continue
            lines.append("")
            lines.append(f"{comparison.endpoint} ({comparison.baseline_id} -> {comparison.current_id})")
            for diff in diffs:
                change = _change_text(diff)
                line = f"  - {diff.severity.value} {diff.kind.value} {diff.path}"
                lines.append(f"{line}: {change}" if change else line)

    totals = summarize(shown)
    lines.append("")
    lines.append(
        f"{totals['endpoints']} endpoint(s), {totals['changed']} changed: "
        f"{totals['breaking']} breaking, {totals['non-breaking']} non-breaking, "
        f"{totals['informational']} informational"
    )
    return "\n".join(lines) + "\n"


def render_json(comparisons: Sequence[Comparison], *, only_breaking: bool = False, summary: bool = False) -> str:
    shown = _filtered(comparisons, only_breaking)
    if summary:
        return json.dumps(summarize(shown), indent=2) + "\n"
    items = []
    for comparison in shown:
        data = comparison.to_dict()
        data["differences"] = [d.to_dict() for d in _visible(comparison, only_breaking)]
        data["counts"] = comparison.counts()
        items.append(data)
    return json.dumps({"comparisons": items, "summary": summarize(shown)}, indent=2, ensure_ascii=False) + "\n"


def render_markdown(
    comparisons: Sequence[Comparison],
    *,
    details: bool = False,
    only_breaking: bool = False,
    text_diffs: dict[str, str] | None = None,
) -> str:
    shown = _filtered(comparisons, only_breaking)
    totals = summarize(shown)
    lines = [
        "# API snapshot comparison",
        "",
        f"- Endpoints: {totals['endpoints']}",
        f"- Changed: {totals['changed']}",
        f"- Breaking: {totals['breaking']}",
        f"- Non-breaking: {totals['non-breaking']}",
        f"- Informational: {totals['informational']}",
        "",
    ]
    for comparison in shown:
        diffs = _visible(comparison, only_breaking)
        lines.append(f"## {comparison.endpoint}")
        lines.append("")
        if not diffs:
            lines.append("No changes.")
            lines.append("")
            continue
        lines.append("| Severity | Change | Path | Old | New |")
        lines.append("| --- | --- | --- | --- | --- |")
        for diff in diffs:
            old = f"`{_fmt_value(diff.old_value)}`" if diff.has_old_value else ""
            new = f"`{_fmt_value(diff.new_value)}`" if diff.has_new_value else ""
            lines.append(f"| {diff.severity.value} | {diff.kind.value} | `{diff.path}` | {old} | {new} |")
        lines.append("")
        text = (text_diffs or {}).get(comparison.endpoint)
        if details and text:
            lines.extend(["<details><summary>Body diff</summary>", "", "```diff", text, "```", "", "</details>", ""])
    return "\n".join(lines)


def render(
    fmt: str,
    comparisons: Sequence[Comparison],
    *,
    details: bool = False,
    only_breaking: bool = False,
    summary: bool = False,
    text_diffs: dict[str, str] | None = None,
) -> str:
    if fmt == "json":
        return render_json(comparisons, only_breaking=only_breaking, summary=summary)
    if fmt == "markdown":
        return render_markdown(comparisons, details=details, only_breaking=only_breaking, text_diffs=text_diffs)
    if fmt == "table":
        return render_table(comparisons, details=details, only_breaking=only_breaking)
    raise ValueError(f"Unknown format: {fmt}")


def diff_document(comparisons: Sequence[Comparison], *, timestamp: str | None = None) -> dict[str, Any]:
    return {
        "timestamp": timestamp or utc_now_iso(),
        "comparisons": [c.to_dict() for c in comparisons],
        "summary": summarize(comparisons),
    }
