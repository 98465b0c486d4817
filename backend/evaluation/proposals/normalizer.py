"""
Normalizer — reduce proposals to the fields that matter for comparison.

normalize_proposal(proposal, config) -> dict

Two paths:
- Config-driven: ValidationConfig.normalization rules map target fields to
  source paths, so shapes the engine does not know about can be compared.
- Legacy: the built-in change/creation extraction.

Missing source fields are omitted from the output (never raised on), and
the input proposal is never mutated.
"""
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from evaluation.proposals.config import (
    LITERAL_SOURCE,
    SELF_SOURCE,
    FieldExtractor,
    NormalizationRule,
    ValidationConfig,
)
from evaluation.proposals.paths import get_value_at_path
from evaluation.proposals.types import MISSING, ChangeType, Proposal

logger = logging.getLogger(__name__)

ProposalInput = Union[Proposal, dict]


def _as_dict(proposal: ProposalInput) -> dict:
    if isinstance(proposal, dict):
        return proposal
    return proposal.to_dict()


def _put(out: dict, key: str, value: Any) -> None:
    if value is not MISSING:
        out[key] = copy.deepcopy(value)


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZER INTERFACE
# ═══════════════════════════════════════════════════════════════════════════════

class ProposalNormalizer(ABC):
    """Turns one wire proposal into a comparable dict."""

    @abstractmethod
    def normalize(self, proposal: dict) -> dict:
        pass


class LegacyProposalNormalizer(ProposalNormalizer):
    """
    Built-in extraction for the change/creation union.

    creation -> changeType, relatedUserId, mutationVariables
    change   -> changeType, changedField, newValue,
                mutationQueryPropertyPath, relatedUserId, mutationVariables
    """

    def normalize(self, proposal: dict) -> dict:
        mutation_query = proposal.get("mutationQuery")
        if not isinstance(mutation_query, dict):
            mutation_query = {}

        if proposal.get("changeType") == ChangeType.CREATION.value:
            out = {"changeType": ChangeType.CREATION.value}
            _put(out, "relatedUserId", proposal.get("relatedUserId", MISSING))
            _put(out, "mutationVariables", mutation_query.get("variables", MISSING))
            return out

        out = {"changeType": ChangeType.CHANGE.value}
        _put(out, "changedField", proposal.get("changedField", MISSING))
        _put(out, "newValue", proposal.get("newValue", MISSING))
        _put(out, "mutationQueryPropertyPath", mutation_query.get("propertyPath", MISSING))
        _put(out, "relatedUserId", proposal.get("relatedUserId", MISSING))
        _put(out, "mutationVariables", mutation_query.get("variables", MISSING))
        return out


class ConfigDrivenNormalizer(ProposalNormalizer):
    """Field extraction driven entirely by NormalizationRule data."""

    def __init__(self, rules: list[NormalizationRule]):
        self.rules = rules

    def select_rule(self, proposal: dict) -> Optional[NormalizationRule]:
        """
        First rule whose `when` equals the proposal's changeType; otherwise
        the last rule without `when`.
        """
        selected = None
        change_type = proposal.get("changeType")
        for rule in self.rules:
            if rule.when is None:
                selected = rule
            elif rule.when == change_type:
                return rule
        return selected

    def _extract(self, proposal: dict, rule: NormalizationRule, extractor: Union[str, FieldExtractor]) -> Any:
        if isinstance(extractor, str):
            if extractor == LITERAL_SOURCE:
                return rule.when if rule.when is not None else MISSING
            if extractor == SELF_SOURCE:
                return proposal
            return get_value_at_path(proposal, extractor)

        if extractor.source == LITERAL_SOURCE:
            value = extractor.default
            if value is MISSING or value is None:
                value = rule.when if rule.when is not None else MISSING
        elif extractor.source == SELF_SOURCE:
            value = proposal
        else:
            value = get_value_at_path(proposal, extractor.source)

        if value is MISSING and extractor.default is not MISSING:
            value = extractor.default
        if extractor.transform is not None and value is not MISSING:
            value = extractor.transform(value)
        return value

    def normalize(self, proposal: dict) -> dict:
        rule = self.select_rule(proposal)
        if rule is None:
            logger.warning(
                f"No normalization rule for changeType={proposal.get('changeType')!r} "
                f"(available: {[r.when or 'default' for r in self.rules]}) - proposal kept as-is"
            )
            return copy.deepcopy(proposal)

        out: dict = {}
        for target, extractor in rule.fields.items():
            _put(out, target, self._extract(proposal, rule, extractor))

        logger.debug(
            f"Normalized {proposal.get('changeType')!r} proposal with rule "
            f"'{rule.when or 'default'}': {sorted(out)}"
        )
        return out


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY POINTS
# ═══════════════════════════════════════════════════════════════════════════════

def normalize_with_config(proposal: ProposalInput, config: ValidationConfig) -> dict:
    """Apply the config's normalization rules; a copy of the input if there are none."""
    data = _as_dict(proposal)
    if not config.normalization:
        logger.debug("No normalization rules configured, proposal kept as-is")
        return copy.deepcopy(data)
    return ConfigDrivenNormalizer(config.normalization).normalize(data)


def normalize_proposal(proposal: ProposalInput, config: Optional[ValidationConfig] = None) -> dict:
    """Normalize one proposal (raw dict or ChangeProposal / CreationProposal)."""
    if config is not None and config.normalization:
        return normalize_with_config(proposal, config)
    return LegacyProposalNormalizer().normalize(_as_dict(proposal))


def normalize_proposals(proposals: list, config: Optional[ValidationConfig] = None) -> list[dict]:
    return [normalize_proposal(p, config) for p in proposals]
