"""
Tests for the transformer registry and transformer application.
"""
import logging

import pytest

from evaluation.proposals.config import ValidationConfig, build_default_validation_config
from evaluation.proposals.errors import ConfigError
from evaluation.proposals.transformers import (
    TransformerCondition,
    TransformerConfig,
    TransformerStrategy,
    apply_add_transformers,
    apply_transformer,
    build_default_transformer_registry,
    get_path_transformer,
    resolve_transformer,
)
from evaluation.proposals.types import MISSING, ExpectedProposal, ProposalOverrides

TODAY = "2024-09-18T00:00:00.000Z"


class TestRegistry:
    """Tests for TransformerRegistry."""

    def test_builtins_present(self, registry):
        for key in [
            "transformer-today-utc",
            "transformer-today-utc-for-change",
            "transformer-today-utc-for-creation",
            "transformer-uppercase",
            "transformer-lowercase",
            "transformer-trim",
            "transformer-to-string",
            "transformer-boolean-true",
            "transformer-boolean-false",
            "transformer-empty-array",
            "transformer-empty-object",
        ]:
            assert registry.has(key), key

    def test_unknown(self, registry):
        assert registry.get("transformer-nope") is None

    def test_template_transformer_created_and_cached(self, registry):
        """Dynamic template transformers are built on first lookup, then reused."""
        first = registry.get("transformer-template-currentMonth+3")
        assert first is not None
        assert first.strategy is TransformerStrategy.ADD_MISSING_ONLY
        assert "transformer-template-currentMonth+3" in registry.keys()
        assert registry.get("transformer-template-currentMonth+3") is first

    def test_template_transformer_invalid_variable(self, registry):
        assert registry.get("transformer-template-invalidVar") is None
        assert "transformer-template-invalidVar" not in registry.keys()

    def test_registries_are_independent(self, registry):
        registry.get("transformer-template-currentYear")
        assert "transformer-template-currentYear" not in build_default_transformer_registry().keys()


class TestResolveTransformer:
    """Tests for resolve_transformer() and strategy defaults."""

    def test_strategy_add_missing_only(self, registry):
        config = resolve_transformer("transformer-today-utc", registry)
        assert (config.on_missing, config.on_existing, config.apply_to) == ("add", "skip", "expected")

    def test_strategy_transform_always(self, registry):
        config = resolve_transformer("transformer-trim", registry)
        assert (config.on_missing, config.on_existing, config.apply_to) == ("skip", "transform", "both")

    def test_plain_callable(self, registry):
        config = resolve_transformer(lambda v, ctx: v, registry)
        assert (config.on_missing, config.on_existing, config.apply_to) == ("skip", "transform", "both")

    def test_explicit_fields_win(self, registry):
        config = resolve_transformer(
            TransformerConfig(
                transform=lambda v, ctx: v,
                strategy=TransformerStrategy.ADD_MISSING_ONLY,
                apply_to="both",
            ),
            registry,
        )
        assert config.apply_to == "both"
        assert config.on_missing == "add"

    def test_wire_dict(self, registry):
        config = resolve_transformer(
            {"transformer": "transformer-uppercase", "applyTo": "actual", "when": {"path": "changeType", "equals": "change"}},
            registry,
        )
        assert config.apply_to == "actual"
        assert config.on_existing == "transform"
        assert config.when[0].path == "changeType"

    def test_wire_dict_bad_strategy(self, registry):
        with pytest.raises(ConfigError):
            resolve_transformer({"transformer": "transformer-trim", "strategy": "sometimes"}, registry)

    def test_unknown_name(self, registry, caplog):
        with caplog.at_level(logging.WARNING):
            assert resolve_transformer("transformer-missing", registry) is None
        assert "Unknown transformer" in caplog.text


class TestGetPathTransformer:
    """Tests for get_path_transformer()."""

    def test_exact_lookup(self, registry):
        config = ValidationConfig(transformers={"newValue": "transformer-trim"})
        assert get_path_transformer("newValue", config, registry).key == "transformer-trim"

    def test_no_prefix_match(self, registry):
        """A transformer on a parent never fires for its children."""
        config = ValidationConfig(transformers={"mutationVariables": "transformer-trim"})
        assert get_path_transformer("mutationVariables.data", config, registry) is None

    def test_wildcard(self, registry):
        config = ValidationConfig(transformers={"items[*].name": "transformer-lowercase"})
        assert get_path_transformer(("items", 4, "name"), config, registry).key == "transformer-lowercase"

    def test_no_config(self, registry):
        assert get_path_transformer("x", None, registry) is None


class TestApplyTransformer:
    """Tests for apply_transformer()."""

    def test_no_transformer(self, registry):
        result = apply_transformer("x", "newValue", ValidationConfig(), True, registry)
        assert result.value == "x"
        assert not result.was_added

    def test_transform_both_sides(self, registry):
        config = ValidationConfig(transformers={"newValue": "transformer-trim"})
        assert apply_transformer("  4500 ", "newValue", config, True, registry).value == "4500"
        assert apply_transformer("  4500 ", "newValue", config, False, registry).value == "4500"

    def test_add_missing_on_expected(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        result = apply_transformer(MISSING, "startDate", config, True, registry, fixed_date)
        assert result.value == TODAY
        assert result.was_added

    def test_add_missing_not_on_actual(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        result = apply_transformer(MISSING, "startDate", config, False, registry, fixed_date)
        assert result.value is MISSING
        assert not result.was_added

    def test_add_missing_keeps_existing(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        result = apply_transformer("2024-01-01", "startDate", config, True, registry, fixed_date)
        assert result.value == "2024-01-01"

    def test_transform_always_skips_missing(self, registry):
        config = ValidationConfig(transformers={"newValue": "transformer-uppercase"})
        assert apply_transformer(MISSING, "newValue", config, True, registry).value is MISSING

    def test_non_string_passthrough(self, registry):
        config = ValidationConfig(transformers={"newValue": "transformer-uppercase"})
        assert apply_transformer(42, "newValue", config, True, registry).value == 42

    def test_to_string(self, registry):
        config = ValidationConfig(transformers={"newValue": "transformer-to-string"})
        assert apply_transformer(4500, "newValue", config, False, registry).value == "4500"
        assert apply_transformer(4500.0, "newValue", config, False, registry).value == "4500"
        assert apply_transformer(True, "newValue", config, False, registry).value == "true"

    def test_unknown_transformer_fails_open(self, registry, caplog):
        config = ValidationConfig(transformers={"newValue": "transformer-missing"})
        with caplog.at_level(logging.WARNING):
            assert apply_transformer("x", "newValue", config, True, registry).value == "x"
        assert "transformer-missing" in caplog.text

    def test_failing_transformer_fails_open(self, registry, caplog):
        def boom(value, ctx):
            raise RuntimeError("boom")

        config = ValidationConfig(transformers={"newValue": boom})
        with caplog.at_level(logging.WARNING):
            assert apply_transformer("x", "newValue", config, True, registry).value == "x"
        assert "boom" in caplog.text

    def test_side_restriction(self, registry):
        config = ValidationConfig(transformers={
            "newValue": {"transformer": "transformer-uppercase", "applyTo": "actual"},
        })
        assert apply_transformer("abc", "newValue", config, True, registry).value == "abc"
        assert apply_transformer("abc", "newValue", config, False, registry).value == "ABC"

    def test_constant_values_are_fresh(self, registry):
        config = ValidationConfig(transformers={"tags": "transformer-empty-array"})
        first = apply_transformer(MISSING, "tags", config, True, registry).value
        first.append("x")
        assert apply_transformer(MISSING, "tags", config, True, registry).value == []


class TestTransformerCondition:
    """Tests for TransformerCondition.check()."""

    def test_equals(self):
        condition = TransformerCondition(path="changeType", equals="change")
        assert condition.check({"changeType": "change"})
        assert not condition.check({"changeType": "creation"})

    def test_equals_any_of(self):
        condition = TransformerCondition(path="changeType", equals=["change", "creation"])
        assert condition.check({"changeType": "creation"})

    def test_not_equals(self):
        condition = TransformerCondition(path="status", not_equals="rejected")
        assert condition.check({"status": "pending"})
        assert not condition.check({"status": "rejected"})

    def test_exists(self):
        condition = TransformerCondition(path="mutationVariables.data.id", exists=True)
        assert condition.check({"mutationVariables": {"data": {"id": None}}})
        assert not condition.check({"mutationVariables": {}})

    def test_from_dict_requires_path(self):
        with pytest.raises(ConfigError):
            TransformerCondition.from_dict({"equals": "x"})


class TestApplyAddTransformers:
    """Tests for apply_add_transformers()."""

    def test_adds_effective_date_for_change(self, registry, fixed_date):
        config = build_default_validation_config()
        expected = [{"changeType": "change", "mutationVariables": {"data": {"amount": 1}}}]
        actual = [{"changeType": "change", "mutationVariables": {"data": {"amount": 1, "effectiveDate": TODAY}}}]

        result = apply_add_transformers(
            expected, config, is_expected=True, paired_proposals=actual,
            registry=registry, current_date=fixed_date,
        )

        assert result[0]["mutationVariables"]["data"]["effectiveDate"] == TODAY
        assert "startDate" not in result[0]["mutationVariables"]["data"]
        assert "effectiveDate" not in expected[0]["mutationVariables"]["data"]

    def test_condition_checks_paired_actual(self, registry, fixed_date):
        """The for-change transformer looks at the actual proposal's changeType."""
        config = build_default_validation_config()
        expected = [{"changeType": "change"}]
        actual = [{"changeType": "creation"}]

        result = apply_add_transformers(
            expected, config, paired_proposals=actual, registry=registry, current_date=fixed_date,
        )

        assert result[0] == {"changeType": "change", "mutationVariables": {"data": {"startDate": TODAY}}}

    def test_no_pair_skips_actual_conditions(self, registry, fixed_date):
        config = build_default_validation_config()
        result = apply_add_transformers(
            [{"changeType": "change"}], config, paired_proposals=[], registry=registry, current_date=fixed_date,
        )
        assert result == [{"changeType": "change"}]

    def test_existing_value_kept(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        result = apply_add_transformers([{"startDate": "2020-01-01"}], config, registry=registry, current_date=fixed_date)
        assert result == [{"startDate": "2020-01-01"}]

    def test_not_applied_to_actual_side(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        result = apply_add_transformers([{}], config, is_expected=False, registry=registry, current_date=fixed_date)
        assert result == [{}]

    def test_ignored_path_not_added(self, registry, fixed_date):
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        item = ExpectedProposal(proposal={}, overrides=ProposalOverrides(ignore_paths=["startDate"]))

        result = apply_add_transformers([item], config, registry=registry, current_date=fixed_date)

        assert isinstance(result[0], ExpectedProposal)
        assert result[0].proposal == {}
        assert result[0].overrides is item.overrides

    def test_proposal_transformer_overrides(self, registry, fixed_date):
        """Per-proposal transformers replace the config's transformers."""
        config = ValidationConfig(transformers={"startDate": "transformer-today-utc"})
        item = ExpectedProposal(
            proposal={},
            overrides=ProposalOverrides(transformers={"month": "transformer-template-currentMonth+3"}),
        )

        result = apply_add_transformers([item], config, registry=registry, current_date=fixed_date)

        assert result[0].proposal == {"month": "2024-12-01T00:00:00.000Z"}

    def test_no_config(self, registry):
        proposals = [{"a": 1}]
        assert apply_add_transformers(proposals, None, registry=registry) == proposals
