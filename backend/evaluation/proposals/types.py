"""
Type definitions for the Proposal Reconciliation Engine.

Proposals travel as camelCase JSON. The typed dataclasses below mirror that
wire format; the comparison engine itself works on plain dicts so that
config-driven normalization can produce shapes it does not know about.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
import json
import uuid

from evaluation.proposals.errors import ProposalShapeError


class _Missing:
    """Marker for a field that is absent (JSON "undefined")."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


MISSING: Any = _Missing()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class ChangeType(Enum):
    """Discriminator of the proposal union. Closed: no other values are valid."""
    CHANGE = "change"
    CREATION = "creation"


class ProposalStatus(Enum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


# ═══════════════════════════════════════════════════════════════════════════════
# PROPOSALS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class QueryDefinition:
    """A query template plus its variables and the path of the affected value."""
    query: str
    variables: dict[str, Any] = field(default_factory=dict)
    property_path: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Optional["QueryDefinition"]:
        if d is None:
            return None
        return cls(
            query=d.get("query", ""),
            variables=d.get("variables") or {},
            property_path=d.get("propertyPath"),
        )

    def to_dict(self) -> dict:
        d = {"query": self.query, "variables": self.variables}
        if self.property_path is not None:
            d["propertyPath"] = self.property_path
        return d


@dataclass
class _ProposalBase:
    id: str
    created_at: str
    description: str
    status: ProposalStatus = ProposalStatus.PENDING
    related_user_id: Optional[str] = None
    quote: Optional[str] = None

    def _common_dict(self) -> dict:
        d = {
            "id": self.id,
            "createdAt": self.created_at,
            "description": self.description,
            "status": self.status.value,
        }
        if self.related_user_id is not None:
            d["relatedUserId"] = self.related_user_id
        if self.quote is not None:
            d["quote"] = self.quote
        return d

    @staticmethod
    def _common_kwargs(d: dict) -> dict:
        status = d.get("status", ProposalStatus.PENDING.value)
        try:
            status = ProposalStatus(status)
        except ValueError:
            raise ProposalShapeError(f"Unknown proposal status '{status}'")
        return {
            "id": d.get("id", ""),
            "created_at": d.get("createdAt", ""),
            "description": d.get("description", ""),
            "status": status,
            "related_user_id": d.get("relatedUserId"),
            "quote": d.get("quote"),
        }


@dataclass
class ChangeProposal(_ProposalBase):
    """Proposal to change a single logical field of an existing entity."""
    changed_field: Optional[str] = None
    new_value: Optional[str] = None
    mutation_query: Optional[QueryDefinition] = None
    status_quo_query: Optional[QueryDefinition] = None
    dynamic_mutation_variables: Optional[dict[str, QueryDefinition]] = None
    previous_value_at_approval: Optional[str] = None

    change_type = ChangeType.CHANGE

    @classmethod
    def from_dict(cls, d: dict) -> "ChangeProposal":
        dynamic = d.get("dynamicMutationVariables")
        return cls(
            **cls._common_kwargs(d),
            changed_field=d.get("changedField"),
            new_value=d.get("newValue"),
            mutation_query=QueryDefinition.from_dict(d.get("mutationQuery")),
            status_quo_query=QueryDefinition.from_dict(d.get("statusQuoQuery")),
            dynamic_mutation_variables=(
                {name: QueryDefinition.from_dict(q) for name, q in dynamic.items()}
                if dynamic is not None else None
            ),
            previous_value_at_approval=d.get("previousValueAtApproval"),
        )

    def to_dict(self) -> dict:
        d = {"changeType": self.change_type.value, **self._common_dict()}
        if self.changed_field is not None:
            d["changedField"] = self.changed_field
        if self.new_value is not None:
            d["newValue"] = self.new_value
        if self.mutation_query is not None:
            d["mutationQuery"] = self.mutation_query.to_dict()
        if self.status_quo_query is not None:
            d["statusQuoQuery"] = self.status_quo_query.to_dict()
        if self.dynamic_mutation_variables is not None:
            d["dynamicMutationVariables"] = {
                name: q.to_dict() for name, q in self.dynamic_mutation_variables.items()
            }
        if self.previous_value_at_approval is not None:
            d["previousValueAtApproval"] = self.previous_value_at_approval
        return d


@dataclass
class CreationProposal(_ProposalBase):
    """Proposal to create a new entity."""
    mutation_query: Optional[QueryDefinition] = None
    properties: dict[str, str] = field(default_factory=dict)

    change_type = ChangeType.CREATION

    @classmethod
    def from_dict(cls, d: dict) -> "CreationProposal":
        return cls(
            **cls._common_kwargs(d),
            mutation_query=QueryDefinition.from_dict(d.get("mutationQuery")),
            properties=d.get("properties") or {},
        )

    def to_dict(self) -> dict:
        d = {"changeType": self.change_type.value, **self._common_dict()}
        if self.mutation_query is not None:
            d["mutationQuery"] = self.mutation_query.to_dict()
        d["properties"] = self.properties
        return d


Proposal = Union[ChangeProposal, CreationProposal]


def parse_proposal(d: dict) -> Proposal:
    """Parse a wire-format proposal, dispatching on changeType."""
    raw = d.get("changeType")
    try:
        change_type = ChangeType(raw)
    except ValueError:
        raise ProposalShapeError(f"Unknown changeType '{raw}'", change_type=raw)

    if change_type is ChangeType.CREATION:
        return CreationProposal.from_dict(d)
    return ChangeProposal.from_dict(d)


# ═══════════════════════════════════════════════════════════════════════════════
# EXPECTED PROPOSALS & OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ProposalOverrides:
    """
    Per-expected-proposal comparison overrides.

    A field left as None inherits from the base config; an empty list or
    dict is a complete override.
    """
    ignore_paths: Optional[list[str]] = None
    transformers: Optional[dict[str, Any]] = None

    def is_empty(self) -> bool:
        return self.ignore_paths is None and self.transformers is None


@dataclass
class ExpectedProposal:
    """
    An expected normalized proposal plus its comparison overrides.

    Overrides live beside the proposal, so `proposal` is always clean and
    safe to report or log.
    """
    proposal: dict
    overrides: Optional[ProposalOverrides] = None

    METADATA_KEYS = ("ignorePaths", "transformers")

    @classmethod
    def from_annotated(cls, d: dict) -> "ExpectedProposal":
        """Split the inline `ignorePaths` / `transformers` hints off a fixture dict."""
        proposal = {k: v for k, v in d.items() if k not in cls.METADATA_KEYS}

        if not any(k in d for k in cls.METADATA_KEYS):
            return cls(proposal=proposal)

        ignore_paths = d.get("ignorePaths")
        if isinstance(ignore_paths, str):
            ignore_paths = [ignore_paths]
        elif ignore_paths is not None:
            ignore_paths = list(ignore_paths)

        transformers = d.get("transformers")
        if transformers is not None:
            transformers = dict(transformers)

        return cls(
            proposal=proposal,
            overrides=ProposalOverrides(ignore_paths=ignore_paths, transformers=transformers),
        )

    @classmethod
    def coerce(cls, item: Union["ExpectedProposal", dict]) -> "ExpectedProposal":
        if isinstance(item, ExpectedProposal):
            return item
        return cls.from_annotated(item)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ProposalComparisonResult:
    """Reconciliation report of one expected/actual comparison."""
    matches: bool
    missing_in_actual: list[dict]
    unexpected_in_actual: list[dict]
    matched_count: int

    def to_dict(self) -> dict:
        return {
            "matches": self.matches,
            "missingInActual": self.missing_in_actual,
            "unexpectedInActual": self.unexpected_in_actual,
            "matchedCount": self.matched_count,
        }


@dataclass
class EvaluationResult:
    """Scored outcome reported back to the evaluation harness."""
    key: str
    score: int
    comment: str
    value: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "score": self.score,
            "comment": self.comment,
            "value": self.value,
        }


@dataclass
class ComparisonEvent:
    """
    Audit event for one proposal set comparison.

    Hashes are MD5 digests of the canonical JSON of each side, so they do
    not depend on key order.
    """
    event_id: str
    timestamp: str
    expected_count: int
    actual_count: int
    matched_count: int
    matches: bool
    expected_hash: str
    actual_hash: str
    reference_key: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "expected_count": self.expected_count,
            "actual_count": self.actual_count,
            "matched_count": self.matched_count,
            "matches": self.matches,
            "expected_hash": self.expected_hash,
            "actual_hash": self.actual_hash,
            "reference_key": self.reference_key,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @staticmethod
    def create(
        expected: list[dict],
        actual: list[dict],
        result: ProposalComparisonResult,
        expected_hash: str,
        actual_hash: str,
        reference_key: Optional[str] = None,
    ) -> "ComparisonEvent":
        """Factory with auto-generated ID and timestamp."""
        return ComparisonEvent(
            event_id=str(uuid.uuid4()),
            timestamp=utc_timestamp(),
            expected_count=len(expected),
            actual_count=len(actual),
            matched_count=result.matched_count,
            matches=result.matches,
            expected_hash=expected_hash,
            actual_hash=actual_hash,
            reference_key=reference_key,
        )
