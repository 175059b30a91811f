from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from api_snapshot import __version__
from api_snapshot.errors import SnapshotError

if TYPE_CHECKING:
    from api_snapshot.approval import Review
    from api_snapshot.capture import CaptureResult
    from api_snapshot.models import ParameterDefinition
    from api_snapshot.workspace import Workspace

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def _write_output(text: str, *, out_path: str | None = None) -> None:
    if out_path is None:
        sys.stdout.write(text)
        return
    Path(out_path).write_text(text, encoding="utf-8")
    sys.stderr.write(f"Wrote report: {out_path}\n")


def _capture_text(space: str, results: list[CaptureResult]) -> str:
    lines = []
    for r in results:
        if r.success and r.snapshot is not None and r.snapshot.response is not None:
            lines.append(f"- ok {r.endpoint}: {r.snapshot.response.status} ({r.snapshot.id})")
        else:
            lines.append(f"- FAIL {r.endpoint}: {r.error}")
        if r.snapshot is not None:
            for note in r.snapshot.validation:
                lines.append(f"    - {note}")
    ok = sum(1 for r in results if r.success)
    lines.append(f"space={space} captured={ok} failed={len(results) - ok}")
    return "\n".join(lines) + "\n"


def _params_text(definitions: list[ParameterDefinition]) -> str:
    if not definitions:
        return "No parameters.\n"
    lines = []
    for d in definitions:
        value = d.value if d.value is not None else "<unset>"
        lines.append(f"- {d.name} [{d.pattern.value}] = {value} (used by: {', '.join(sorted(d.referenced_by))})")
    return "\n".join(lines) + "\n"


def _exit_code(reviews: list[Review]) -> int:
    from api_snapshot.approval import unresolved_breaking

    return EXIT_FAILED if unresolved_breaking(reviews) else EXIT_OK


def _cmd_capture(ws: Workspace, args: argparse.Namespace) -> int:
    results = asyncio.run(ws.capture(args.space, args.endpoint or None, baseline=args.baseline))
    if args.format == "json":
        text = json.dumps({"space": args.space, "results": [r.to_dict() for r in results]}, indent=2) + "\n"
    else:
        text = _capture_text(args.space, results)
    _write_output(text)
    return EXIT_OK if all(r.success for r in results) else EXIT_FAILED


def _cmd_compare(ws: Workspace, args: argparse.Namespace) -> int:
    from api_snapshot.approval import ConsolePrompter
    from api_snapshot.report import diff_document, render

    comparisons = ws.compare(args.space, args.endpoint)
    prompter = ConsolePrompter() if args.interactive else None
    reviews = ws.approvals().review_all(
        args.space, comparisons, auto_approve=args.auto_approve, prompter=prompter
    )

    text_diffs = ws.text_diffs(comparisons) if args.details and args.format == "markdown" else None
    _write_output(
        render(
            args.format,
            comparisons,
            details=args.details,
            only_breaking=args.only_breaking,
            summary=args.summary,
            text_diffs=text_diffs,
        ),
        out_path=args.out,
    )
    if args.save_diff:
        path = Path(args.save_diff)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(diff_document(comparisons), indent=2) + "\n", encoding="utf-8")
        sys.stderr.write(f"Wrote diff: {path}\n")
    return _exit_code(reviews)


def _cmd_params(ws: Workspace, args: argparse.Namespace) -> int:
    if args.params_command == "list":
        definitions = ws.parameter_definitions(args.space)
        if args.format == "json":
            text = json.dumps([d.to_dict() for d in definitions], indent=2) + "\n"
        else:
            text = _params_text(definitions)
        _write_output(text)
        return EXIT_OK

    if not args.all and not args.names:
        raise SystemExit("params reset: give parameter names or --all")
    removed = ws.reset_parameters(args.space, None if args.all else args.names)
    _write_output(f"Reset {len(removed)} parameter(s): {', '.join(removed) or '-'}\n")
    return EXIT_OK


def _cmd_prune(ws: Workspace, args: argparse.Namespace) -> int:
    removed = ws.prune(args.space, args.keep, endpoint=args.endpoint)
    lines = [f"- {name}: removed {count}" for name, count in removed.items()]
    lines.append(f"space={args.space} removed={sum(removed.values())} keep={args.keep}")
    _write_output("\n".join(lines) + "\n")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="api-snapshot")
    parser.add_argument("--version", action="version", version=f"api-snapshot {__version__}")
    parser.add_argument("--config-dir", type=str, help="Directory holding <space>.yaml files")
    parser.add_argument("--snapshot-dir", type=str, help="Directory snapshots are written to")
    parser.add_argument("--changelog", type=str, help="Approval change log (JSON lines)")
    parser.add_argument("--concurrency", type=int)
    parser.add_argument("--log-level", type=str.upper, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", choices=["console", "json"])
    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Capture snapshots for a space")
    capture.add_argument("--space", required=True)
    capture.add_argument("--endpoint", action="append", default=[], help="Repeatable; default is every endpoint")
    capture.add_argument("--baseline", action="store_true", help="Mark the new snapshots as baselines")
    capture.add_argument("--format", default="text", choices=["text", "json"])

    compare = sub.add_parser("compare", help="Compare the latest snapshots against their baselines")
    compare.add_argument("--space", required=True)
    compare.add_argument("--endpoint", type=str)
    compare.add_argument("--format", default="table", choices=["table", "json", "markdown"])
    compare.add_argument("--details", action="store_true", help="Show every difference")
    compare.add_argument("--only-breaking", action="store_true")
    compare.add_argument("--summary", action="store_true", help="JSON format: print only the summary")
    compare.add_argument("--interactive", action="store_true", help="Ask for a decision on each change")
    compare.add_argument("--auto-approve", action="store_true", help="Approve changes without breaking differences")
    compare.add_argument("--save-diff", type=str, help="Write the comparison document to this path")
    compare.add_argument("--out", type=str, help="Write report to file instead of stdout")

    params = sub.add_parser("params", help="Inspect or reset space parameters")
    params_sub = params.add_subparsers(dest="params_command", required=True)
    params_list = params_sub.add_parser("list", help="List parameters and their current values")
    params_list.add_argument("--space", required=True)
    params_list.add_argument("--format", default="text", choices=["text", "json"])
    params_reset = params_sub.add_parser("reset", help="Forget parameter values so they are generated again")
    params_reset.add_argument("--space", required=True)
    params_reset.add_argument("names", nargs="*")
    params_reset.add_argument("--all", action="store_true")

    prune = sub.add_parser("prune", help="Delete old snapshots, keeping the newest N per endpoint")
    prune.add_argument("--space", required=True)
    prune.add_argument("--endpoint", type=str)
    prune.add_argument("--keep", type=int, required=True)

    return parser


_COMMANDS = {
    "capture": _cmd_capture,
    "compare": _cmd_compare,
    "params": _cmd_params,
    "prune": _cmd_prune,
}


def main(argv: list[str] | None = None, *, workspace: Workspace | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Keep `--version` and `--help` free of the HTTP stack.
    from api_snapshot.config import Settings
    from api_snapshot.logging_utils import configure_logging
    from api_snapshot.workspace import Workspace

    try:
        settings = Settings.from_env().with_overrides(
            config_dir=Path(args.config_dir) if args.config_dir else None,
            snapshot_dir=Path(args.snapshot_dir) if args.snapshot_dir else None,
            changelog=Path(args.changelog) if args.changelog else None,
            concurrency=args.concurrency,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        configure_logging(settings.log_level, settings.log_format)
        ws = workspace or Workspace.from_settings(settings)
        return _COMMANDS[args.command](ws, args)
    except SnapshotError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
