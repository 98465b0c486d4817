"""
Matcher — strict set reconciliation of expected vs actual proposals.

compare_proposal_sets(expected, actual, log_details, config) -> ProposalComparisonResult

Greedy first-fit matching driven by the expected list:
1. Walk the expected entries from last to first.
2. Each entry uses the base config with its own overrides merged on top.
3. The first remaining actual that proposal_matches() is consumed.
4. Entries left on either side are reported.

This is not a maximum bipartite matching. Walking expected in reverse is an
arbitrary but stable tie-break: with duplicate expected entries the last
one claims the first matching actual.

A non-match is a normal outcome, never an exception.
"""
import logging
import math
from datetime import datetime
from typing import Any, Optional, Union

from evaluation.proposals.canonical import to_canonical_json
from evaluation.proposals.config import (
    ValidationConfig,
    merge_validation_configs,
    should_ignore_path,
)
from evaluation.proposals.paths import as_segments, child_path, format_path
from evaluation.proposals.transformers import (
    TransformerRegistry,
    apply_transformer,
    build_default_transformer_registry,
)
from evaluation.proposals.types import (
    MISSING,
    ExpectedProposal,
    ProposalComparisonResult,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(expected: Any, actual: Any) -> bool:
    """
    Equality for primitive JSON values.

    NaN equals NaN, -0.0 equals 0.0, 1 equals 1.0. Booleans only equal
    booleans, and there is no coercion between strings and numbers.
    """
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if _is_number(expected) and _is_number(actual):
        if isinstance(expected, float) and isinstance(actual, float):
            if math.isnan(expected) and math.isnan(actual):
                return True
        return expected == actual
    if _is_number(expected) or _is_number(actual):
        return False
    return type(expected) is type(actual) and expected == actual


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


# ═══════════════════════════════════════════════════════════════════════════════
# MATCHER
# ═══════════════════════════════════════════════════════════════════════════════

class ProposalMatcher:
    """
    Strict proposal matching with an injected transformer registry.

    `current_date` is handed to transformers that generate dates; None
    means "now".
    """

    def __init__(
        self,
        registry: Optional[TransformerRegistry] = None,
        current_date: Optional[datetime] = None,
    ):
        self.registry = registry or build_default_transformer_registry()
        self.current_date = current_date

    def _transform_pair(
        self,
        expected: Any,
        actual: Any,
        path: tuple,
        config: Optional[ValidationConfig],
    ) -> tuple[Any, Any]:
        if config is None:
            return expected, actual
        expected = apply_transformer(
            expected, path, config, True, registry=self.registry, current_date=self.current_date
        ).value
        actual = apply_transformer(
            actual, path, config, False, registry=self.registry, current_date=self.current_date
        ).value
        return expected, actual

    def _has_unignored_extra_keys(
        self,
        expected: dict,
        actual: dict,
        parent: tuple,
        config: Optional[ValidationConfig],
    ) -> bool:
        for key in actual:
            if key in expected:
                continue
            path = child_path(parent, key)
            if not should_ignore_path(path, config):
                logger.debug(f"Extra field in actual at {format_path(path)}")
                return True
        return False

    def proposal_matches(
        self,
        expected: dict,
        actual: dict,
        config: Optional[ValidationConfig] = None,
    ) -> bool:
        """
        Strict containment check of one actual proposal against one expected.

        - A field present only in actual fails unless its path is ignored.
        - Ignored expected fields are skipped.
        - Transformers run on each side independently.
        - An expected field that is still absent after transforming imposes
          no constraint; an absent actual field then fails.
        - Objects and arrays are compared with deep_strict_match().
        """
        if self._has_unignored_extra_keys(expected, actual, (), config):
            return False

        for key in expected:
            path = (key,)
            if should_ignore_path(path, config):
                continue

            expected_value, actual_value = self._transform_pair(
                expected[key], actual.get(key, MISSING), path, config
            )

            if expected_value is MISSING:
                continue
            if actual_value is MISSING:
                logger.debug(f"Field {key} missing in actual")
                return False

            if _is_container(expected_value):
                if not _is_container(actual_value):
                    logger.debug(f"Field {key}: expected object/array, got {actual_value!r}")
                    return False
                if not self.deep_strict_match(expected_value, actual_value, config, path):
                    return False
            elif not values_equal(expected_value, actual_value):
                logger.debug(f"Field {key}: expected {expected_value!r}, got {actual_value!r}")
                return False

        return True

    def deep_strict_match(
        self,
        expected: Any,
        actual: Any,
        config: Optional[ValidationConfig] = None,
        parent_path: Union[tuple, str] = (),
    ) -> bool:
        """
        Recursive strict equality honouring ignore paths and transformers at
        every nested path ("parent.key" / "parent[i]").

        Arrays are order-sensitive and must have equal length. Objects may
        not carry keys the expected object lacks unless those are ignored.
        """
        parent = as_segments(parent_path)

        if expected is None or expected is MISSING:
            return actual is expected

        if isinstance(expected, list):
            if not isinstance(actual, list) or len(expected) != len(actual):
                logger.debug(f"Array mismatch at {format_path(parent) or '<root>'}")
                return False
            for index, (exp_item, act_item) in enumerate(zip(expected, actual)):
                path = child_path(parent, index)
                if should_ignore_path(path, config):
                    continue
                exp_item, act_item = self._transform_pair(exp_item, act_item, path, config)
                if not self.deep_strict_match(exp_item, act_item, config, path):
                    return False
            return True

        if isinstance(expected, dict):
            if not isinstance(actual, dict):
                return False
            if self._has_unignored_extra_keys(expected, actual, parent, config):
                return False
            for key in expected:
                path = child_path(parent, key)
                if should_ignore_path(path, config):
                    continue
                if key not in actual:
                    logger.debug(f"Field {format_path(path)} missing in actual")
                    return False
                exp_value, act_value = self._transform_pair(expected[key], actual[key], path, config)
                if not self.deep_strict_match(exp_value, act_value, config, path):
                    return False
            return True

        if _is_container(actual):
            return False
        return values_equal(expected, actual)

    def compare(
        self,
        expected: list,
        actual: list[dict],
        log_details: bool = False,
        config: Optional[ValidationConfig] = None,
        reference_key: Optional[str] = None,
    ) -> ProposalComparisonResult:
        """
        Reconcile the expected and actual proposal lists.

        Expected items may be ExpectedProposal or dicts carrying inline
        ignorePaths / transformers. Inputs are never mutated; the report
        holds expected proposals without their comparison metadata.
        """
        unmatched_expected = [ExpectedProposal.coerce(item) for item in expected]
        unmatched_actual = list(actual)
        matched_pairs: list[tuple[dict, dict]] = []

        for i in range(len(unmatched_expected) - 1, -1, -1):
            entry = unmatched_expected[i]
            entry_config = config
            if entry.overrides is not None and not entry.overrides.is_empty():
                entry_config = merge_validation_configs(config, None, entry.overrides)

            for j, candidate in enumerate(unmatched_actual):
                if self.proposal_matches(entry.proposal, candidate, entry_config):
                    matched_pairs.append((entry.proposal, candidate))
                    del unmatched_expected[i]
                    del unmatched_actual[j]
                    break

        result = ProposalComparisonResult(
            matches=not unmatched_expected and not unmatched_actual,
            missing_in_actual=[entry.proposal for entry in unmatched_expected],
            unexpected_in_actual=unmatched_actual,
            matched_count=len(matched_pairs),
        )

        if log_details:
            logger.info(
                f"Proposal set comparison (strict matching, ref={reference_key}): expected={len(expected)} "
                f"actual={len(actual)} matched={result.matched_count} "
                f"unmatched_expected={len(result.missing_in_actual)} "
                f"unmatched_actual={len(result.unexpected_in_actual)} matches={result.matches}"
            )
            if result.missing_in_actual:
                logger.debug(f"Unmatched expected proposals: {to_canonical_json(result.missing_in_actual)}")
            if result.unexpected_in_actual:
                logger.debug(f"Unmatched actual proposals: {to_canonical_json(result.unexpected_in_actual)}")

        return result


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL API
# ═══════════════════════════════════════════════════════════════════════════════

def compare_proposal_sets(
    expected: list,
    actual: list[dict],
    log_details: bool = False,
    config: Optional[ValidationConfig] = None,
    registry: Optional[TransformerRegistry] = None,
    reference_key: Optional[str] = None,
) -> ProposalComparisonResult:
    return ProposalMatcher(registry).compare(
        expected, actual, log_details=log_details, config=config, reference_key=reference_key
    )


def proposal_matches(
    expected: dict,
    actual: dict,
    config: Optional[ValidationConfig] = None,
    registry: Optional[TransformerRegistry] = None,
) -> bool:
    return ProposalMatcher(registry).proposal_matches(expected, actual, config)


def deep_strict_match(
    expected: Any,
    actual: Any,
    config: Optional[ValidationConfig] = None,
    parent_path: Union[tuple, str] = (),
    registry: Optional[TransformerRegistry] = None,
) -> bool:
    return ProposalMatcher(registry).deep_strict_match(expected, actual, config, parent_path)


def log_proposal_details(
    proposals: list,
    kind: str,
    reference_key: Optional[str] = None,
) -> None:
    """INFO summary plus one DEBUG line of canonical JSON per proposal."""
    logger.info(f"Logging {kind} proposals: count={len(proposals)} reference_key={reference_key}")
    for index, proposal in enumerate(proposals):
        if isinstance(proposal, ExpectedProposal):
            proposal = proposal.proposal
        logger.debug(f"{kind} proposal [{index}]: {to_canonical_json(proposal)}")
