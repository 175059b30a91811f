from __future__ import annotations

import io
import unittest

from api_snapshot.approval import (
    ApprovalAction,
    ApprovalWorkflow,
    ConsolePrompter,
    Decision,
    unresolved_breaking,
)
from api_snapshot.errors import InvalidTransitionError
from api_snapshot.models import Comparison, Difference, DiffKind, Disposition, Severity
from api_snapshot.stores import InMemoryChangeLog


def _comparison(*severities: Severity, endpoint: str = "get-user") -> Comparison:
    kinds = {
        Severity.BREAKING: DiffKind.REMOVED,
        Severity.NON_BREAKING: DiffKind.ADDED,
        Severity.INFORMATIONAL: DiffKind.MODIFIED,
    }
    diffs = tuple(
        Difference(path=f"response.body.f{i}", kind=kinds[s], severity=s, old_value=1, new_value=2)
        for i, s in enumerate(severities)
    )
    return Comparison(endpoint=endpoint, baseline_id="snap_b", current_id="snap_c", differences=diffs)


class ScriptedPrompter:
    def __init__(self, *decisions: Decision) -> None:
        self.decisions = list(decisions)
        self.asked: list[str] = []

    def ask(self, space, comparison):
        self.asked.append(comparison.endpoint)
        return self.decisions.pop(0)


class TestApprovalWorkflow(unittest.TestCase):
    def setUp(self) -> None:
        self.changelog = InMemoryChangeLog()
        self.promoted: list[tuple[str, str]] = []

        def promote(space: str, endpoint: str) -> str:
            self.promoted.append((space, endpoint))
            return "snap_new"

        self.workflow = ApprovalWorkflow(self.changelog, promote_hook=promote, clock=lambda: "2024-01-01T00:00:00Z")

    def test_auto_approves_without_breaking_changes(self) -> None:
        review = self.workflow.review("staging", _comparison(Severity.NON_BREAKING), auto_approve=True)
        self.assertEqual(review.disposition, Disposition.APPROVED)
        [entry] = self.changelog.entries()
        self.assertTrue(entry.automatic)
        self.assertEqual(entry.counts, {"breaking": 0, "non-breaking": 1, "informational": 0})
        self.assertEqual(entry.timestamp, "2024-01-01T00:00:00Z")

    def test_breaking_changes_are_never_auto_approved(self) -> None:
        review = self.workflow.review(
            "staging", _comparison(Severity.BREAKING, Severity.NON_BREAKING), auto_approve=True
        )
        self.assertEqual(review.disposition, Disposition.PENDING)
        [entry] = self.changelog.entries()
        self.assertEqual(entry.disposition, Disposition.PENDING)
        self.assertEqual(unresolved_breaking([review]), 1)

    def test_prompter_decisions(self) -> None:
        prompter = ScriptedPrompter(
            Decision(ApprovalAction.APPROVE),
            Decision(ApprovalAction.REJECT, reason="client still reads legacyId"),
            Decision(ApprovalAction.SKIP),
        )
        reviews = self.workflow.review_all(
            "staging",
            [
                _comparison(Severity.BREAKING, endpoint="a"),
                _comparison(Severity.INFORMATIONAL, endpoint="b"),
                _comparison(endpoint="unchanged"),
                _comparison(Severity.BREAKING, endpoint="c"),
            ],
            prompter=prompter,
        )
        self.assertEqual(prompter.asked, ["a", "b", "c"])
        self.assertEqual(
            [r.disposition for r in reviews],
            [Disposition.APPROVED, Disposition.REJECTED, Disposition.SKIPPED],
        )
        self.assertEqual(self.changelog.entries()[1].reason, "client still reads legacyId")
        self.assertEqual(unresolved_breaking(reviews), 2)

    def test_approve_and_promote_recaptures_baseline(self) -> None:
        prompter = ScriptedPrompter(Decision(ApprovalAction.APPROVE_AND_PROMOTE))
        review = self.workflow.review("staging", _comparison(Severity.BREAKING), prompter=prompter)
        self.assertEqual(review.disposition, Disposition.APPROVED)
        self.assertEqual(self.promoted, [("staging", "get-user")])
        self.assertEqual(review.entry.promoted_snapshot_id, "snap_new")
        self.assertEqual(unresolved_breaking([review]), 0)

    def test_terminal_reviews_reject_further_decisions(self) -> None:
        review = self.workflow.open("staging", _comparison(Severity.BREAKING))
        self.workflow.decide(review, ApprovalAction.REJECT)
        with self.assertRaises(InvalidTransitionError):
            self.workflow.decide(review, ApprovalAction.APPROVE)
        with self.assertRaises(InvalidTransitionError):
            self.workflow.defer(review)
        self.assertEqual(len(self.changelog.entries()), 1)


class TestConsolePrompter(unittest.TestCase):
    def test_reprompts_until_valid_and_asks_reason_on_reject(self) -> None:
        answers = iter(["x", "r", "breaks mobile app"])
        out = io.StringIO()
        prompter = ConsolePrompter(input_fn=lambda prompt: next(answers), out=out)
        decision = prompter.ask("staging", _comparison(Severity.BREAKING))
        self.assertEqual(decision, Decision(ApprovalAction.REJECT, reason="breaks mobile app"))
        self.assertIn("staging/get-user: 1 breaking", out.getvalue())
        self.assertIn("Please answer", out.getvalue())

    def test_update_baseline_choice(self) -> None:
        prompter = ConsolePrompter(input_fn=lambda prompt: "u", out=io.StringIO())
        self.assertEqual(prompter.ask("s", _comparison()).action, ApprovalAction.APPROVE_AND_PROMOTE)


if __name__ == "__main__":
    unittest.main()
