"""
Proposal Reconciliation Engine for agent evaluation.

Pipeline: normalize → add missing fields → match → report

INVARIANTS:
1. Inputs are never mutated; every stage works on copies
2. A non-match is a result, never an exception
3. Each actual proposal is matched at most once
4. Unknown or failing transformers pass values through unchanged
"""
from evaluation.proposals.types import (
    MISSING,
    ChangeType,
    ChangeProposal,
    CreationProposal,
    ExpectedProposal,
    ProposalOverrides,
    ProposalComparisonResult,
    EvaluationResult,
    ComparisonEvent,
    parse_proposal,
)
from evaluation.proposals.errors import (
    ProposalEngineError,
    ProposalShapeError,
    ConfigError,
    TransformerError,
)
from evaluation.proposals.canonical import canonicalize, to_canonical_json, hash_canonical
from evaluation.proposals.config import (
    ValidationConfig,
    merge_validation_configs,
    should_ignore_path,
)
from evaluation.proposals.transformers import (
    TransformerRegistry,
    TransformerStrategy,
    apply_transformer,
    apply_add_transformers,
    build_default_transformer_registry,
)
from evaluation.proposals.normalizer import normalize_proposal, normalize_proposals
from evaluation.proposals.matcher import (
    ProposalMatcher,
    compare_proposal_sets,
    proposal_matches,
    deep_strict_match,
)
from evaluation.proposals.evaluator import DataChangeProposalEvaluator

__all__ = [
    "MISSING",
    "ChangeType",
    "ChangeProposal",
    "CreationProposal",
    "ExpectedProposal",
    "ProposalOverrides",
    "ProposalComparisonResult",
    "EvaluationResult",
    "ComparisonEvent",
    "parse_proposal",
    "ProposalEngineError",
    "ProposalShapeError",
    "ConfigError",
    "TransformerError",
    "canonicalize",
    "to_canonical_json",
    "hash_canonical",
    "ValidationConfig",
    "merge_validation_configs",
    "should_ignore_path",
    "TransformerRegistry",
    "TransformerStrategy",
    "apply_transformer",
    "apply_add_transformers",
    "build_default_transformer_registry",
    "normalize_proposal",
    "normalize_proposals",
    "ProposalMatcher",
    "compare_proposal_sets",
    "proposal_matches",
    "deep_strict_match",
    "DataChangeProposalEvaluator",
]
