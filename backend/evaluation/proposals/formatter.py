"""
Formatter — human-readable comparison comments.

On failure, expected and actual proposals are aligned by a weighted field
similarity score (so ordering differences don't dominate) and each aligned
pair is rendered as a line diff of pretty canonical JSON.
"""
import difflib
import logging
from typing import Optional

from evaluation.proposals.canonical import to_canonical_json
from evaluation.proposals.types import ExpectedProposal, ProposalComparisonResult

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "✅ Evaluation Passed: All data change proposals matched successfully!"
FAILURE_MESSAGE = "❌ Evaluation Failed: Data Change Proposals Don't Match"

# Points a key contributes when both sides hold the same value
KEY_WEIGHTS = {
    "changeType": 3,
    "changedField": 5,
    "mutationQueryPropertyPath": 3,
    "relatedUserId": 2,
    "newValue": 2,
    "mutationVariables": 4,
}
DEFAULT_PRIMITIVE_POINTS = 1
DEFAULT_OBJECT_POINTS = 2

NONE_PLACEHOLDER = "<none>"


def _clean(proposals: list) -> list[dict]:
    return [p.proposal if isinstance(p, ExpectedProposal) else p for p in proposals]


def score_pair(expected: dict, actual: dict) -> int:
    """Similarity of two proposals over the keys both define (non-null)."""
    score = 0
    for key, e_value in expected.items():
        a_value = actual.get(key)
        if e_value is None or a_value is None:
            continue
        if to_canonical_json(e_value) != to_canonical_json(a_value):
            continue
        if isinstance(e_value, (dict, list)):
            score += KEY_WEIGHTS.get(key, DEFAULT_OBJECT_POINTS)
        else:
            score += KEY_WEIGHTS.get(key, DEFAULT_PRIMITIVE_POINTS)
    return score


def align_proposals(expected: list[dict], actual: list[dict]) -> list[tuple[Optional[int], Optional[int]]]:
    """
    Greedy alignment by descending score; only positive scores pair up.

    Unaligned expected then unaligned actual entries follow in their
    original order.
    """
    pairs = [
        (i, j, score_pair(e, a))
        for i, e in enumerate(expected)
        for j, a in enumerate(actual)
    ]
    pairs.sort(key=lambda p: -p[2])

    used_expected: set[int] = set()
    used_actual: set[int] = set()
    aligned: list[tuple[Optional[int], Optional[int]]] = []

    for i, j, score in pairs:
        if score <= 0 or i in used_expected or j in used_actual:
            continue
        used_expected.add(i)
        used_actual.add(j)
        aligned.append((i, j))

    aligned.extend((i, None) for i in range(len(expected)) if i not in used_expected)
    aligned.extend((None, j) for j in range(len(actual)) if j not in used_actual)
    return aligned


def _pretty(proposal: Optional[dict]) -> str:
    if proposal is None:
        return NONE_PLACEHOLDER
    return to_canonical_json(proposal, indent=2)


def _diff_lines(expected_text: str, actual_text: str) -> list[str]:
    return [
        line for line in difflib.ndiff(expected_text.splitlines(), actual_text.splitlines())
        if not line.startswith("? ")
    ]


def render_proposal_diff(expected: list, actual: list[dict]) -> str:
    """One "Proposal N diff" section per aligned pair."""
    expected = _clean(expected)
    output = ""
    for n, (i, j) in enumerate(align_proposals(expected, actual), start=1):
        title = f"Proposal {n} diff"
        output += f"\n{title}\n{'-' * len(title)}"
        e = expected[i] if i is not None else None
        a = actual[j] if j is not None else None
        for line in _diff_lines(_pretty(e), _pretty(a)):
            output += f"\n{line}"
        output += "\n"
    return output


class ProposalFormatter:
    """Pass/fail comment for an EvaluationResult."""

    def format_success(self, expected: list) -> str:
        return SUCCESS_MESSAGE

    def format_failure(self, expected: list, actual: list[dict], result: ProposalComparisonResult) -> str:
        diff = render_proposal_diff(expected, actual)
        logger.debug(f"Proposal diff ({result.matched_count} matched):{diff}")
        return "\n".join([FAILURE_MESSAGE, "", "---", diff, "---"])

    def format(self, expected: list, actual: list[dict], result: ProposalComparisonResult) -> str:
        if result.matches:
            return self.format_success(expected)
        return self.format_failure(expected, actual, result)
