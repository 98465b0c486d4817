"""
Data change proposal evaluator.

Scores an agent run by reconciling the proposals it emitted
(outputs["dataChangeProposals"]) with the expected proposals stored in the
dataset example (reference_outputs["expectedDataProposal"] by default).

Score is binary: 1 when every expected proposal is matched and nothing
unexpected was proposed, else 0.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from evaluation.proposals import settings
from evaluation.proposals.audit import audit_comparison
from evaluation.proposals.config import (
    ValidationConfig,
    build_default_validation_config,
    merge_validation_configs,
)
from evaluation.proposals.formatter import ProposalFormatter
from evaluation.proposals.matcher import ProposalMatcher, log_proposal_details
from evaluation.proposals.normalizer import normalize_proposals
from evaluation.proposals.transformers import (
    TransformerRegistry,
    apply_add_transformers,
    build_default_transformer_registry,
)
from evaluation.proposals.types import EvaluationResult, ExpectedProposal

logger = logging.getLogger(__name__)

EVALUATION_KEY = "data_change_proposal_verification"
DEFAULT_REFERENCE_KEY = "expectedDataProposal"
OUTPUTS_KEY = "dataChangeProposals"
VALIDATION_CONFIG_KEY = "validationConfig"
COMPARISON_METHOD = "strict_structural_match"


class DataChangeProposalEvaluator:
    """
    Evaluator for data change proposals.

    Args:
        global_config: Layer 1 ValidationConfig (defaults to the date
            transformer mappings)
        registry: Transformer registry shared by all evaluations
        log_details: Log every proposal before comparing (defaults to
            PROPOSAL_EVAL_LOG_DETAILS)
    """

    def __init__(
        self,
        global_config: Optional[ValidationConfig] = None,
        registry: Optional[TransformerRegistry] = None,
        log_details: Optional[bool] = None,
    ):
        self.global_config = global_config if global_config is not None else build_default_validation_config()
        self.registry = registry or build_default_transformer_registry()
        self.log_details = settings.LOG_DETAILS if log_details is None else log_details
        self.formatter = ProposalFormatter()

    def _missing_reference(self, key: str, reference_outputs: Optional[dict]) -> EvaluationResult:
        logger.warning(
            f"Required reference key '{key}' not found "
            f"(available: {sorted(reference_outputs or {})})"
        )
        return EvaluationResult(
            key=EVALUATION_KEY,
            score=0,
            comment=f"Error: Required reference key '{key}' not found",
        )

    def evaluate(
        self,
        outputs: Optional[dict],
        reference_outputs: Optional[dict],
        reference_key: Optional[str] = None,
        current_date: Optional[datetime] = None,
    ) -> EvaluationResult:
        key = reference_key or DEFAULT_REFERENCE_KEY
        if not reference_outputs or reference_outputs.get(key) is None:
            return self._missing_reference(key, reference_outputs)

        reference_value: Any = reference_outputs[key]
        raw_expected = reference_value if isinstance(reference_value, list) else [reference_value]
        expected = [ExpectedProposal.coerce(item) for item in raw_expected]

        config = merge_validation_configs(
            self.global_config,
            reference_outputs.get(VALIDATION_CONFIG_KEY),
        )

        raw_actual = (outputs or {}).get(OUTPUTS_KEY) or []
        actual = normalize_proposals(raw_actual, config)

        current_date = current_date or datetime.now(timezone.utc)
        expected = apply_add_transformers(
            expected, config, is_expected=True, paired_proposals=actual,
            registry=self.registry, current_date=current_date,
        )
        actual = apply_add_transformers(
            actual, config, is_expected=False, paired_proposals=expected,
            registry=self.registry, current_date=current_date,
        )

        if self.log_details:
            log_proposal_details(expected, "expected", key)
            log_proposal_details(actual, "actual", key)

        matcher = ProposalMatcher(self.registry, current_date)
        result = matcher.compare(
            expected, actual, log_details=self.log_details, config=config, reference_key=key
        )
        audit_comparison(
            [entry.proposal for entry in expected], actual, result, reference_key=key
        )

        logger.info(
            f"[{EVALUATION_KEY}] {key}: matched {result.matched_count}/{len(expected)} expected, "
            f"{len(actual)} actual -> score {1 if result.matches else 0}"
        )

        return EvaluationResult(
            key=EVALUATION_KEY,
            score=1 if result.matches else 0,
            comment=self.formatter.format(expected, actual, result),
            value={
                "expectedProposalCount": len(expected),
                "actualProposalCount": len(actual),
                "matchedCount": result.matched_count,
                "missingProposals": len(result.missing_in_actual),
                "unexpectedProposals": len(result.unexpected_in_actual),
                "missingInActual": result.missing_in_actual,
                "unexpectedInActual": result.unexpected_in_actual,
                "referenceKey": key,
                "comparisonMethod": COMPARISON_METHOD,
            },
        )


def evaluate_data_change_proposals(
    outputs: Optional[dict],
    reference_outputs: Optional[dict],
    reference_key: Optional[str] = None,
) -> EvaluationResult:
    """One-shot evaluation with the default config and registry."""
    return DataChangeProposalEvaluator().evaluate(outputs, reference_outputs, reference_key)
