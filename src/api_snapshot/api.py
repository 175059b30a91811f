from __future__ import annotations

import asyncio

from .approval import Prompter, Review, unresolved_breaking
from .capture import CaptureResult
from .config import Settings
from .models import Comparison
from .workspace import Workspace


def capture(
    *,
    space: str,
    endpoints: list[str] | None = None,
    baseline: bool = False,
    settings: Settings | None = None,
    workspace: Workspace | None = None,
) -> list[CaptureResult]:
    """
    Capture snapshots programmatically.

    `endpoints=None` captures every endpoint of the space.
    """

    ws = workspace or Workspace.from_settings(settings or Settings.from_env())
    return asyncio.run(ws.capture(space, endpoints, baseline=baseline))


def compare(
    *,
    space: str,
    endpoint: str | None = None,
    auto_approve: bool = False,
    prompter: Prompter | None = None,
    settings: Settings | None = None,
    workspace: Workspace | None = None,
) -> tuple[list[Comparison], list[Review]]:
    """
    Compare the latest snapshots against their baselines and review the changes.

    Use `unresolved_breaking(reviews)` for the pass/fail decision.
    """

    ws = workspace or Workspace.from_settings(settings or Settings.from_env())
    comparisons = ws.compare(space, endpoint)
    reviews = ws.approvals().review_all(space, comparisons, auto_approve=auto_approve, prompter=prompter)
    return comparisons, reviews


__all__ = ["capture", "compare", "unresolved_breaking"]
