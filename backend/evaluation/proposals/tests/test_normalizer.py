"""
Tests for proposal normalization.
"""
import copy
import logging

from evaluation.proposals.config import FieldExtractor, NormalizationRule, ValidationConfig
from evaluation.proposals.normalizer import (
    normalize_proposal,
    normalize_proposals,
    normalize_with_config,
)
from evaluation.proposals.types import parse_proposal


class TestLegacyNormalization:
    """Tests for the built-in change/creation extraction."""

    def test_change(self, raw_change_proposal):
        assert normalize_proposal(raw_change_proposal) == {
            "changeType": "change",
            "changedField": "salary",
            "newValue": "4500",
            "mutationQueryPropertyPath": "employee.payments[0].amount",
            "relatedUserId": "emp-1",
            "mutationVariables": {"data": {"id": "pay-1", "amount": 4500, "effectiveDate": "2024-10-01T00:00:00.000Z"}},
        }

    def test_creation(self, raw_creation_proposal):
        assert normalize_proposal(raw_creation_proposal) == {
            "changeType": "creation",
            "relatedUserId": "emp-2",
            "mutationVariables": {"data": {"amount": 500, "type": "bonus"}},
        }

    def test_missing_optional_fields_omitted(self):
        """Absent fields stay absent instead of raising."""
        assert normalize_proposal({"changeType": "change", "changedField": "salary"}) == {
            "changeType": "change",
            "changedField": "salary",
        }

    def test_null_kept(self):
        result = normalize_proposal({"changeType": "creation", "relatedUserId": None})
        assert result == {"changeType": "creation", "relatedUserId": None}

    def test_does_not_mutate_or_share(self, raw_change_proposal):
        before = copy.deepcopy(raw_change_proposal)
        result = normalize_proposal(raw_change_proposal)
        result["mutationVariables"]["data"]["amount"] = 1
        assert raw_change_proposal == before

    def test_typed_proposal(self, raw_change_proposal):
        typed = parse_proposal(raw_change_proposal)
        assert normalize_proposal(typed) == normalize_proposal(raw_change_proposal)

    def test_typed_proposal_missing_field(self):
        """A parsed proposal without changedField normalizes like the raw dict."""
        raw = {"changeType": "change", "newValue": "1"}
        typed = parse_proposal(raw)
        assert typed.changed_field is None
        assert normalize_proposal(typed) == normalize_proposal(raw) == {"changeType": "change", "newValue": "1"}

    def test_empty_normalization_uses_legacy(self, raw_creation_proposal):
        config = ValidationConfig(normalization=[])
        assert normalize_proposal(raw_creation_proposal, config)["changeType"] == "creation"


class TestConfigDrivenNormalization:
    """Tests for normalize_with_config()."""

    def test_rule_by_change_type(self, raw_change_proposal):
        config = ValidationConfig(normalization=[
            NormalizationRule(when="creation", fields={"user": "relatedUserId"}),
            NormalizationRule(when="change", fields={
                "type": "__literal__",
                "field": "changedField",
                "amount": "mutationQuery.variables.data.amount",
            }),
        ])

        assert normalize_proposal(raw_change_proposal, config) == {
            "type": "change",
            "field": "salary",
            "amount": 4500,
        }

    def test_default_rule(self, raw_creation_proposal):
        config = ValidationConfig(normalization=[
            NormalizationRule(when="change", fields={"field": "changedField"}),
            NormalizationRule(fields={"user": "relatedUserId"}),
        ])
        assert normalize_proposal(raw_creation_proposal, config) == {"user": "emp-2"}

    def test_missing_source_omitted(self, raw_creation_proposal):
        config = ValidationConfig(normalization=[
            NormalizationRule(fields={"user": "relatedUserId", "field": "changedField"}),
        ])
        assert normalize_proposal(raw_creation_proposal, config) == {"user": "emp-2"}

    def test_extractor_default_and_transform(self, raw_creation_proposal):
        config = ValidationConfig(normalization=[
            NormalizationRule(fields={
                "field": FieldExtractor(source="changedField", default="none"),
                "amount": FieldExtractor(source="properties.amount", transform=int),
                "kind": FieldExtractor(source="__literal__", default="payment"),
            }),
        ])
        assert normalize_proposal(raw_creation_proposal, config) == {
            "field": "none",
            "amount": 500,
            "kind": "payment",
        }

    def test_self_source_is_copy(self, raw_creation_proposal):
        config = ValidationConfig(normalization=[NormalizationRule(fields={"raw": "__self__"})])
        result = normalize_proposal(raw_creation_proposal, config)
        assert result["raw"] == raw_creation_proposal
        assert result["raw"] is not raw_creation_proposal

    def test_no_matching_rule(self, raw_creation_proposal, caplog):
        config = ValidationConfig(normalization=[NormalizationRule(when="change", fields={"f": "changedField"})])
        with caplog.at_level(logging.WARNING):
            result = normalize_with_config(raw_creation_proposal, config)
        assert result == raw_creation_proposal
        assert result is not raw_creation_proposal
        assert "No normalization rule" in caplog.text

    def test_from_wire_config(self, raw_change_proposal):
        config = ValidationConfig.from_dict({
            "normalization": [{"fields": {"user": {"from": "relatedUserId"}, "path": "mutationQuery.propertyPath"}}],
        })
        assert normalize_proposal(raw_change_proposal, config) == {
            "user": "emp-1",
            "path": "employee.payments[0].amount",
        }


def test_normalize_proposals(raw_change_proposal, raw_creation_proposal):
    result = normalize_proposals([raw_change_proposal, raw_creation_proposal])
    assert [p["changeType"] for p in result] == ["change", "creation"]
