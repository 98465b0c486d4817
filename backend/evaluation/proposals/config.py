"""
Validation configuration — ignore paths, transformers, normalization rules.

Configuration comes in three layers, highest priority first:

    proposal overrides  >  example config  >  global config

A field supplied by a higher layer REPLACES the lower layer's value
(`[]` / `{}` mean "nothing"); a field a layer does not supply is inherited.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from evaluation.proposals.errors import ConfigError
from evaluation.proposals.paths import PathLike, compile_pattern, format_path
from evaluation.proposals.types import MISSING, ProposalOverrides

logger = logging.getLogger(__name__)

SELF_SOURCE = "__self__"
LITERAL_SOURCE = "__literal__"

# Global (layer 1) transformer defaults for data change proposals
DEFAULT_TRANSFORMER_MAPPINGS: dict[str, str] = {
    "mutationVariables.data.effectiveDate": "transformer-today-utc-for-change",
    "mutationVariables.data.startDate": "transformer-today-utc-for-creation",
}


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZATION RULES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class FieldExtractor:
    """
    Where a normalized field comes from.

    `source` is a dotted path, SELF_SOURCE (the whole proposal) or
    LITERAL_SOURCE (the `default`, or the rule's `when`).
    """
    source: str
    default: Any = MISSING
    transform: Optional[Callable[[Any], Any]] = None

    @classmethod
    def from_dict(cls, d: dict) -> "FieldExtractor":
        if "from" not in d:
            raise ConfigError("Field extractor requires 'from'", original_value=d)
        return cls(source=d["from"], default=d.get("defaultValue", MISSING))


@dataclass
class NormalizationRule:
    """Field mapping for proposals whose changeType equals `when` (or all, if None)."""
    fields: dict[str, Union[str, FieldExtractor]]
    when: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> "NormalizationRule":
        raw_fields = d.get("fields")
        if not isinstance(raw_fields, dict):
            raise ConfigError("Normalization rule requires a 'fields' mapping", original_value=d)
        fields: dict[str, Union[str, FieldExtractor]] = {}
        for target, source in raw_fields.items():
            if isinstance(source, str):
                fields[target] = source
            elif isinstance(source, dict):
                fields[target] = FieldExtractor.from_dict(source)
            else:
                raise ConfigError(
                    f"Unsupported extractor for field '{target}'",
                    field_path=target,
                    original_value=source,
                )
        return cls(fields=fields, when=d.get("when"))


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ValidationConfig:
    """
    Per-comparison configuration.

    transformers maps a path (or wildcard pattern) to a registry name, a
    plain callable, a TransformerConfig, or a wire dict naming a registry
    transformer with strategy/condition overrides.
    """
    ignore_paths: list[str] = field(default_factory=list)
    transformers: dict[str, Any] = field(default_factory=dict)
    normalization: Optional[list[NormalizationRule]] = None
    _compiled_ignores: Optional[tuple] = field(default=None, init=False, repr=False, compare=False)

    @property
    def ignore_patterns(self) -> tuple:
        """Compiled ignore paths, rebuilt only when ignore_paths changes."""
        key = tuple(self.ignore_paths)
        if self._compiled_ignores is None or self._compiled_ignores[0] != key:
            self._compiled_ignores = (key, tuple(compile_pattern(p) for p in key))
        return self._compiled_ignores[1]

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "ValidationConfig":
        if not d:
            return cls()
        fields = _parse_wire_fields(d)
        return cls(
            ignore_paths=fields.get("ignore_paths", []),
            transformers=fields.get("transformers", {}),
            normalization=fields.get("normalization"),
        )

    def copy(self) -> "ValidationConfig":
        return ValidationConfig(
            ignore_paths=list(self.ignore_paths),
            transformers=dict(self.transformers),
            normalization=list(self.normalization) if self.normalization is not None else None,
        )


def build_default_validation_config() -> ValidationConfig:
    """Layer 1 defaults used by the data change proposal evaluator."""
    return ValidationConfig(transformers=dict(DEFAULT_TRANSFORMER_MAPPINGS))


def _parse_ignore_paths(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(p, str) for p in value):
        return list(value)
    raise ConfigError("ignorePaths must be a string or a list of strings", original_value=value)


def _parse_wire_fields(d: dict) -> dict:
    """Only the keys actually present in `d`, parsed to python field names."""
    fields: dict[str, Any] = {}
    if "ignorePaths" in d and d["ignorePaths"] is not None:
        fields["ignore_paths"] = _parse_ignore_paths(d["ignorePaths"])
    if "transformers" in d and d["transformers"] is not None:
        if not isinstance(d["transformers"], dict):
            raise ConfigError("transformers must be a mapping", original_value=d["transformers"])
        fields["transformers"] = dict(d["transformers"])
    if "normalization" in d and d["normalization"] is not None:
        fields["normalization"] = [NormalizationRule.from_dict(r) for r in d["normalization"]]
    return fields


def _layer_fields(layer: Any) -> dict:
    if layer is None:
        return {}
    if isinstance(layer, ValidationConfig):
        fields = {
            "ignore_paths": list(layer.ignore_paths),
            "transformers": dict(layer.transformers),
        }
        if layer.normalization is not None:
            fields["normalization"] = list(layer.normalization)
        return fields
    if isinstance(layer, ProposalOverrides):
        fields = {}
        if layer.ignore_paths is not None:
            fields["ignore_paths"] = list(layer.ignore_paths)
        if layer.transformers is not None:
            fields["transformers"] = dict(layer.transformers)
        return fields
    if isinstance(layer, dict):
        return _parse_wire_fields(layer)
    raise ConfigError(f"Unsupported config layer type {type(layer).__name__}")


def merge_validation_configs(
    global_config: Optional[ValidationConfig],
    example_config: Union[ValidationConfig, dict, None] = None,
    proposal_overrides: Union[ProposalOverrides, dict, None] = None,
) -> ValidationConfig:
    """
    Merge the three configuration layers.

    A ValidationConfig layer supplies all of its fields (normalization only
    when not None); a dict layer supplies only the wire keys it contains;
    proposal overrides never touch normalization.
    """
    merged = global_config.copy() if global_config is not None else ValidationConfig()

    for is_proposal_layer, layer in ((False, example_config), (True, proposal_overrides)):
        fields = _layer_fields(layer)
        if is_proposal_layer:
            fields.pop("normalization", None)
        for name, value in fields.items():
            setattr(merged, name, value)

    return merged


def should_ignore_path(path: PathLike, config: Optional[ValidationConfig]) -> bool:
    """
    True if `path` falls under any configured ignore path.

    Matching is prefix-based on whole segments: "items" covers "items",
    "items[0]" and "items[0].name", but not "itemsCount". "*" matches one
    segment.
    """
    if config is None or not config.ignore_paths:
        return False

    for pattern in config.ignore_patterns:
        if pattern.matches(path, descendants=True):
            logger.debug(
                f"Path ignored by config: {path if isinstance(path, str) else format_path(path)} "
                f"(pattern '{pattern.source}')"
            )
            return True
    return False
