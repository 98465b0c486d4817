"""
Transformers — named value adjustments applied before comparison.

A transformer is looked up by field path in ValidationConfig.transformers.
Its strategy decides whether it fills in missing values ("add"), rewrites
existing ones ("transform"), and on which side (expected / actual / both).

Unknown transformer names and failing transformers fail OPEN: the value
passes through unchanged and a warning is logged.
"""
import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

from evaluation.proposals.config import ValidationConfig, merge_validation_configs, should_ignore_path
from evaluation.proposals.errors import ConfigError, TransformerError
from evaluation.proposals.paths import (
    PathLike,
    format_path,
    get_value_at_path,
    has_value_at_path,
    path_matches_pattern,
    set_value_at_path,
)
from evaluation.proposals.templates import (
    TemplateContext,
    TemplateVariableRegistry,
    to_utc_midnight_iso,
)
from evaluation.proposals.types import MISSING, ExpectedProposal

logger = logging.getLogger(__name__)

TEMPLATE_PREFIX = "transformer-template-"


class TransformerStrategy(Enum):
    ADD_MISSING_ONLY = "add-missing-only"   # fill in when missing, leave existing values alone
    TRANSFORM_ALWAYS = "transform-always"
    TRANSFORM_EXISTING = "transform-existing"


# strategy -> (on_missing, on_existing, apply_to)
STRATEGY_SETTINGS = {
    TransformerStrategy.ADD_MISSING_ONLY: ("add", "skip", "expected"),
    TransformerStrategy.TRANSFORM_ALWAYS: ("skip", "transform", "both"),
    TransformerStrategy.TRANSFORM_EXISTING: ("skip", "transform", "both"),
}

CONDITION_TARGETS = ("self", "actual", "expected")


@dataclass
class TransformerContext:
    path: str
    is_expected: bool
    current_date: Optional[datetime] = None

    def today_iso(self) -> str:
        now = self.current_date or datetime.now(timezone.utc)
        return to_utc_midnight_iso(TemplateContext(current_date=now).today)


TransformFn = Callable[[Any, TransformerContext], Any]


# ═══════════════════════════════════════════════════════════════════════════════
# CONDITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else [value]


@dataclass
class TransformerCondition:
    """When a transformer applies. Every set check must hold."""
    path: str
    equals: Any = MISSING
    not_equals: Any = MISSING
    exists: Optional[bool] = None

    @classmethod
    def from_dict(cls, d: dict) -> "TransformerCondition":
        if "path" not in d:
            raise ConfigError("Transformer condition requires 'path'", original_value=d)
        return cls(
            path=d["path"],
            equals=d.get("equals", MISSING),
            not_equals=d.get("notEquals", MISSING),
            exists=d.get("exists"),
        )

    def check(self, proposal: Any) -> bool:
        value = get_value_at_path(proposal, self.path)

        if self.exists is not None and self.exists != has_value_at_path(proposal, self.path):
            return False
        if self.equals is not MISSING and value not in _as_list(self.equals):
            return False
        if self.not_equals is not MISSING and value in _as_list(self.not_equals):
            return False
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSFORMER CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TransformerConfig:
    """
    Fully specified transformer behaviour.

    Explicit on_missing / on_existing / apply_to win over the strategy's
    settings; resolved() fills in whatever is still unset.
    """
    transform: TransformFn
    strategy: Optional[TransformerStrategy] = None
    when: list[TransformerCondition] = field(default_factory=list)
    condition_target: str = "self"
    on_missing: Optional[str] = None
    on_existing: Optional[str] = None
    apply_to: Optional[str] = None
    key: Optional[str] = None

    def resolved(self) -> "TransformerConfig":
        if self.strategy is not None:
            on_missing, on_existing, apply_to = STRATEGY_SETTINGS[self.strategy]
        else:
            on_missing, on_existing, apply_to = "skip", "transform", "both"
        return replace(
            self,
            on_missing=self.on_missing or on_missing,
            on_existing=self.on_existing or on_existing,
            apply_to=self.apply_to or apply_to,
        )

    def applies_to_side(self, is_expected: bool) -> bool:
        side = "expected" if is_expected else "actual"
        return self.apply_to in ("both", side)

    def conditions_met(self, proposal: Any) -> bool:
        return all(condition.check(proposal) for condition in self.when)


@dataclass
class RegisteredTransformer:
    """A named transformer available to configs by key."""
    key: str
    description: str
    transform: TransformFn
    strategy: Optional[TransformerStrategy] = None
    when: list[TransformerCondition] = field(default_factory=list)
    condition_target: str = "self"

    def to_config(self) -> TransformerConfig:
        return TransformerConfig(
            transform=self.transform,
            strategy=self.strategy,
            when=list(self.when),
            condition_target=self.condition_target,
            key=self.key,
        )


def _today_utc(value: Any, ctx: TransformerContext) -> str:
    return ctx.today_iso()


def _string_op(op: Callable[[str], str]) -> TransformFn:
    def transform(value: Any, ctx: TransformerContext) -> Any:
        return op(value) if isinstance(value, str) else value
    return transform


def _to_string(value: Any, ctx: TransformerContext) -> Any:
    if value is None or value is MISSING or isinstance(value, (dict, list)):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _constant(value: Any) -> TransformFn:
    def transform(_: Any, ctx: TransformerContext) -> Any:
        return copy.deepcopy(value)
    return transform


TRANSFORMER_DEFINITIONS = [
    RegisteredTransformer(
        key="transformer-today-utc",
        description="Sets value to today at UTC midnight",
        transform=_today_utc,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    RegisteredTransformer(
        key="transformer-today-utc-for-change",
        description="Sets effectiveDate to today at UTC midnight for change proposals",
        transform=_today_utc,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
        when=[TransformerCondition(path="changeType", equals="change")],
        condition_target="actual",
    ),
    RegisteredTransformer(
        key="transformer-today-utc-for-creation",
        description="Sets startDate to today at UTC midnight for creation proposals",
        transform=_today_utc,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
        when=[TransformerCondition(path="changeType", equals="creation")],
        condition_target="actual",
    ),
    RegisteredTransformer(
        key="transformer-uppercase",
        description="Converts value to uppercase string",
        transform=_string_op(str.upper),
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    RegisteredTransformer(
        key="transformer-lowercase",
        description="Converts value to lowercase string",
        transform=_string_op(str.lower),
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    RegisteredTransformer(
        key="transformer-trim",
        description="Trims whitespace from string values",
        transform=_string_op(str.strip),
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    RegisteredTransformer(
        key="transformer-to-string",
        description="Renders numbers and booleans as JSON-style strings",
        transform=_to_string,
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    RegisteredTransformer(
        key="transformer-boolean-true",
        description="Sets value to boolean true",
        transform=_constant(True),
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    RegisteredTransformer(
        key="transformer-boolean-false",
        description="Sets value to boolean false",
        transform=_constant(False),
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    RegisteredTransformer(
        key="transformer-empty-array",
        description="Sets value to empty array",
        transform=_constant([]),
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    RegisteredTransformer(
        key="transformer-empty-object",
        description="Sets value to empty object",
        transform=_constant({}),
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
]


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════════

class TransformerRegistry:
    """
    Named transformers, including "transformer-template-<expression>" keys
    that are built from template variables on first lookup and cached.

    Instances are built explicitly and handed to the matcher; there is no
    process-wide registry.
    """

    def __init__(
        self,
        definitions: Optional[list[RegisteredTransformer]] = None,
        template_variables: Optional[TemplateVariableRegistry] = None,
    ):
        self._transformers: dict[str, RegisteredTransformer] = {}
        self.template_variables = template_variables or TemplateVariableRegistry()
        for definition in definitions if definitions is not None else TRANSFORMER_DEFINITIONS:
            self.register(definition)

    def register(self, transformer: RegisteredTransformer) -> None:
        self._transformers[transformer.key] = transformer

    def get(self, key: str) -> Optional[RegisteredTransformer]:
        transformer = self._transformers.get(key)
        if transformer is None and key.startswith(TEMPLATE_PREFIX):
            transformer = self._build_template_transformer(key)
            if transformer is not None:
                self._transformers[key] = transformer
        return transformer

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> list[str]:
        return list(self._transformers)

    def all(self) -> list[RegisteredTransformer]:
        return list(self._transformers.values())

    def _build_template_transformer(self, key: str) -> Optional[RegisteredTransformer]:
        expression = key[len(TEMPLATE_PREFIX):]
        probe = TemplateContext(current_date=datetime.now(timezone.utc))
        if self.template_variables.evaluate_expression(expression, probe) is None:
            return None

        variables = self.template_variables

        def transform(value: Any, ctx: TransformerContext) -> Any:
            now = ctx.current_date or datetime.now(timezone.utc)
            result = variables.evaluate_expression(expression, TemplateContext(current_date=now))
            return result.data_value if result is not None else value

        return RegisteredTransformer(
            key=key,
            description=f"Sets value from template expression '{expression}'",
            transform=transform,
            strategy=TransformerStrategy.ADD_MISSING_ONLY,
        )


def build_default_transformer_registry() -> TransformerRegistry:
    """Registry with the built-in transformers and date template variables."""
    return TransformerRegistry()


# ═══════════════════════════════════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════════

def _config_from_wire(spec: dict, registry: TransformerRegistry) -> Optional[TransformerConfig]:
    name = spec.get("transformer")
    registered = registry.get(name) if name else None
    if registered is None:
        logger.warning(f"Unknown transformer '{name}' in transformer config - value left unchanged")
        return None

    config = registered.to_config()
    if "strategy" in spec:
        try:
            config.strategy = TransformerStrategy(spec["strategy"])
        except ValueError:
            raise ConfigError(f"Unknown transformer strategy '{spec['strategy']}'", original_value=spec)
    if "when" in spec:
        config.when = [TransformerCondition.from_dict(c) for c in _as_list(spec["when"])]
    if "conditionTarget" in spec:
        if spec["conditionTarget"] not in CONDITION_TARGETS:
            raise ConfigError(f"Unknown conditionTarget '{spec['conditionTarget']}'", original_value=spec)
        config.condition_target = spec["conditionTarget"]
    config.on_missing = spec.get("onMissing", config.on_missing)
    config.on_existing = spec.get("onExisting", config.on_existing)
    config.apply_to = spec.get("applyTo", config.apply_to)
    return config


def resolve_transformer(
    spec: Union[str, TransformFn, TransformerConfig, dict],
    registry: TransformerRegistry,
) -> Optional[TransformerConfig]:
    """Turn any supported transformer spec into a resolved TransformerConfig."""
    if isinstance(spec, TransformerConfig):
        config = spec
    elif isinstance(spec, str):
        registered = registry.get(spec)
        if registered is None:
            logger.warning(f"Unknown transformer '{spec}' - value left unchanged")
            return None
        config = registered.to_config()
    elif isinstance(spec, dict):
        config = _config_from_wire(spec, registry)
        if config is None:
            return None
    elif callable(spec):
        config = TransformerConfig(transform=spec)
    else:
        logger.warning(f"Unsupported transformer spec {spec!r} - value left unchanged")
        return None
    return config.resolved()


def get_path_transformer(
    path: PathLike,
    config: Optional[ValidationConfig],
    registry: TransformerRegistry,
) -> Optional[TransformerConfig]:
    """Transformer for `path`: exact key first, then wildcard patterns."""
    if config is None or not config.transformers:
        return None

    path_str = path if isinstance(path, str) else format_path(path)
    if path_str in config.transformers:
        return resolve_transformer(config.transformers[path_str], registry)

    for pattern, spec in config.transformers.items():
        if path_matches_pattern(path, pattern):
            return resolve_transformer(spec, registry)
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# APPLICATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class TransformResult:
    value: Any
    was_added: bool = False


def _run(config: TransformerConfig, value: Any, ctx: TransformerContext) -> Any:
    try:
        return config.transform(value, ctx)
    except Exception as e:
        raise TransformerError(
            f"Transformer failed: {e}",
            transformer_key=config.key,
            field_path=ctx.path,
            original_value=value,
        ) from e


def apply_transformer(
    value: Any,
    path: PathLike,
    config: Optional[ValidationConfig],
    is_expected: bool,
    registry: Optional[TransformerRegistry] = None,
    current_date: Optional[datetime] = None,
) -> TransformResult:
    """
    Apply the transformer configured for `path` to `value`.

    Returns the value unchanged when no transformer is configured, the
    transformer does not target this side, or it fails.
    """
    registry = registry or build_default_transformer_registry()
    transformer = get_path_transformer(path, config, registry)
    if transformer is None or not transformer.applies_to_side(is_expected):
        return TransformResult(value)

    ctx = TransformerContext(
        path=path if isinstance(path, str) else format_path(path),
        is_expected=is_expected,
        current_date=current_date,
    )

    try:
        if value is MISSING or value is None:
            if transformer.on_missing == "add":
                return TransformResult(_run(transformer, MISSING, ctx), was_added=True)
            return TransformResult(value)

        if transformer.on_existing == "skip":
            return TransformResult(value)

        return TransformResult(_run(transformer, value, ctx))
    except TransformerError as e:
        logger.warning(f"Failed to apply transformer at {ctx.path}: {e.message}")
        return TransformResult(value)


def apply_add_transformers(
    proposals: list,
    config: Optional[ValidationConfig],
    is_expected: bool = True,
    paired_proposals: Optional[list] = None,
    registry: Optional[TransformerRegistry] = None,
    current_date: Optional[datetime] = None,
) -> list:
    """
    Fill in missing fields on copies of `proposals` using "add" transformers.

    Items may be plain dicts or ExpectedProposal (whose overrides are merged
    into the config first). A transformer whose condition targets the other
    side is checked against the index-paired proposal and skipped when there
    is no pair. Paths covered by an ignore path are never added.
    """
    if config is None:
        return list(proposals)

    registry = registry or build_default_transformer_registry()
    current_date = current_date or datetime.now(timezone.utc)
    side = "expected" if is_expected else "actual"
    results = []

    for index, item in enumerate(proposals):
        wrapped = isinstance(item, ExpectedProposal)
        proposal = item.proposal if wrapped else item
        effective = config
        if wrapped and item.overrides is not None:
            effective = merge_validation_configs(config, None, item.overrides)

        modified = copy.deepcopy(proposal)
        paired = None
        if paired_proposals is not None and index < len(paired_proposals):
            paired = paired_proposals[index]
            if isinstance(paired, ExpectedProposal):
                paired = paired.proposal

        fields_added = 0
        for path, spec in effective.transformers.items():
            transformer = resolve_transformer(spec, registry)
            if transformer is None or transformer.on_missing != "add":
                continue
            if not transformer.applies_to_side(is_expected):
                continue

            target = transformer.condition_target
            if target == "self" or target == side:
                condition_proposal = modified
            elif paired is not None:
                condition_proposal = paired
            else:
                logger.debug(
                    f"Skipping transformer '{path}' on {side}[{index}]: "
                    f"condition targets {target} but no paired proposal"
                )
                continue

            if not transformer.conditions_met(condition_proposal):
                continue
            if has_value_at_path(modified, path):
                continue
            if should_ignore_path(path, effective):
                logger.debug(f"Skipping transformer for ignored path {path} on {side}[{index}]")
                continue

            ctx = TransformerContext(path=path, is_expected=is_expected, current_date=current_date)
            try:
                value = _run(transformer, MISSING, ctx)
            except TransformerError as e:
                logger.warning(f"Failed to add field {path} on {side}[{index}]: {e.message}")
                continue
            set_value_at_path(modified, path, value)
            fields_added += 1
            logger.debug(f"Added missing field {path}={value!r} on {side}[{index}]")

        if fields_added:
            logger.debug(f"{side}[{index}]: {fields_added} field(s) added by transformers")

        if wrapped:
            results.append(ExpectedProposal(proposal=modified, overrides=item.overrides))
        else:
            results.append(modified)

    return results
