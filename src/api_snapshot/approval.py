from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Protocol, TextIO

import structlog

from .errors import InvalidTransitionError
from .models import ChangeLogEntry, Comparison, Disposition, utc_now_iso
from .stores import ChangeLog

logger = structlog.get_logger(__name__)

PromoteHook = Callable[[str, str], "str | None"]


class ApprovalAction(Enum):
    APPROVE = "approve"
    APPROVE_AND_PROMOTE = "promote"
    REJECT = "reject"
    SKIP = "skip"


_ACTION_DISPOSITION = {
    ApprovalAction.APPROVE: Disposition.APPROVED,
    ApprovalAction.APPROVE_AND_PROMOTE: Disposition.APPROVED,
    ApprovalAction.REJECT: Disposition.REJECTED,
    ApprovalAction.SKIP: Disposition.SKIPPED,
}


@dataclass(frozen=True, slots=True)
class Decision:
    action: ApprovalAction
    reason: str | None = None


class Prompter(Protocol):
    def ask(self, space: str, comparison: Comparison) -> Decision: ...


class Review:
    """Decision state for one comparison: PENDING until decided, then terminal."""

    def __init__(self, space: str, comparison: Comparison) -> None:
        self.space = space
        self.comparison = comparison
        self.disposition = Disposition.PENDING
        self.entry: ChangeLogEntry | None = None

    @property
    def terminal(self) -> bool:
        return self.disposition is not Disposition.PENDING

    def __repr__(self) -> str:
        return f"Review(space={self.space!r}, endpoint={self.comparison.endpoint!r}, disposition={self.disposition.value})"


class ApprovalWorkflow:
    def __init__(
        self,
        changelog: ChangeLog,
        *,
        promote_hook: PromoteHook | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._changelog = changelog
        self._promote_hook = promote_hook
        self._clock = clock

    def open(self, space: str, comparison: Comparison) -> Review:
        return Review(space, comparison)

    def _append(
        self,
        review: Review,
        disposition: Disposition,
        *,
        reason: str | None,
        automatic: bool,
        promoted_snapshot_id: str | None = None,
    ) -> ChangeLogEntry:
        comparison = review.comparison
        entry = ChangeLogEntry(
            id=f"chg_{uuid.uuid4().hex[:12]}",
            space=review.space,
            endpoint=comparison.endpoint,
            baseline_id=comparison.baseline_id,
            current_id=comparison.current_id,
            disposition=disposition,
            timestamp=self._clock(),
            reason=reason,
            counts=comparison.counts(),
            automatic=automatic,
            promoted_snapshot_id=promoted_snapshot_id,
        )
        self._changelog.append(entry)
        review.entry = entry
        return entry

    def decide(
        self,
        review: Review,
        action: ApprovalAction,
        *,
        reason: str | None = None,
        automatic: bool = False,
    ) -> ChangeLogEntry:
        target = _ACTION_DISPOSITION[action]
        if review.terminal:
            raise InvalidTransitionError(review.disposition.value, target.value)

        promoted: str | None = None
        if action is ApprovalAction.APPROVE_AND_PROMOTE:
            if self._promote_hook is None:
                logger.warning("promote_unavailable", space=review.space, endpoint=review.comparison.endpoint)
            else:
                promoted = self._promote_hook(review.space, review.comparison.endpoint)

        review.disposition = target
        entry = self._append(review, target, reason=reason, automatic=automatic, promoted_snapshot_id=promoted)
        logger.info(
            "change_reviewed",
            space=review.space,
            endpoint=review.comparison.endpoint,
            disposition=target.value,
            automatic=automatic,
            promoted_snapshot_id=promoted,
        )
        return entry

    def defer(self, review: Review, *, reason: str | None = None) -> ChangeLogEntry:
        """Record that a comparison was seen but left undecided."""
        if review.terminal:
            raise InvalidTransitionError(review.disposition.value, Disposition.PENDING.value)
        return self._append(review, Disposition.PENDING, reason=reason, automatic=True)

    def review(
        self,
        space: str,
        comparison: Comparison,
        *,
        auto_approve: bool = False,
        prompter: Prompter | None = None,
    ) -> Review:
        review = self.open(space, comparison)
        if auto_approve and not comparison.breaking:
            self.decide(review, ApprovalAction.APPROVE, reason="no breaking changes", automatic=True)
        elif prompter is not None:
            decision = prompter.ask(space, comparison)
            self.decide(review, decision.action, reason=decision.reason)
        else:
            self.defer(review)
        return review

    def review_all(
        self,
        space: str,
        comparisons: Iterable[Comparison],
        *,
        auto_approve: bool = False,
        prompter: Prompter | None = None,
    ) -> list[Review]:
        return [
            self.review(space, c, auto_approve=auto_approve, prompter=prompter)
            for c in comparisons
            if c.has_changes
        ]


def unresolved_breaking(reviews: Iterable[Review]) -> int:
    count = 0
    for review in reviews:
        if review.disposition is Disposition.REJECTED:
            count += 1
        elif review.comparison.breaking and review.disposition is not Disposition.APPROVED:
            count += 1
    return count


_CHOICES = {
    "a": ApprovalAction.APPROVE,
    "u": ApprovalAction.APPROVE_AND_PROMOTE,
    "r": ApprovalAction.REJECT,
    "s": ApprovalAction.SKIP,
}


class ConsolePrompter:
    def __init__(
        self,
        *,
        input_fn: Callable[[str], str] = input,
        out: TextIO | None = None,
    ) -> None:
        self._input = input_fn
        self._out = out

    def _write(self, text: str) -> None:
        (self._out or sys.stdout).write(text)

    def ask(self, space: str, comparison: Comparison) -> Decision:
        counts = comparison.counts()
        self._write(
            f"\n{space}/{comparison.endpoint}: "
            f"{counts['breaking']} breaking, {counts['non-breaking']} non-breaking, "
            f"{counts['informational']} informational\n"
        )
        for diff in comparison.differences:
            self._write(f"  [{diff.severity.value}] {diff.kind.value} {diff.path}\n")
        while True:
            answer = self._input("[a]pprove, approve and [u]pdate baseline, [r]eject, [s]kip? ").strip().lower()
            action = _CHOICES.get(answer[:1])
            if action is not None:
                break
            self._write("Please answer a, u, r or s.\n")
        reason = None
        if action is ApprovalAction.REJECT:
            reason = self._input("Reason (optional): ").strip() or None
        return Decision(action=action, reason=reason)
