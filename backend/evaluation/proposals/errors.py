"""
Error types for the Proposal Reconciliation Engine.

A non-match is never an error: it is reported through
ProposalComparisonResult. These exceptions cover malformed input shapes and
configuration only.
"""
from typing import Any, Optional


class ProposalEngineError(Exception):
    """
    Base error for the reconciliation engine.

    Carries structured data for logging and debugging.
    """

    def __init__(
        self,
        message: str,
        field_path: Optional[str] = None,
        original_value: Optional[Any] = None,
    ):
        self.message = message
        self.field_path = field_path
        self.original_value = original_value
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "field_path": self.field_path,
            "original_value": str(self.original_value)[:100] if self.original_value is not None else None,
        }


class ProposalShapeError(ProposalEngineError):
    """
    A proposal does not belong to the closed change/creation union.

    Only raised when parsing into typed proposals. The dict-based
    normalizer and matcher stay permissive.
    """

    def __init__(self, message: str, change_type: Optional[Any] = None):
        super().__init__(message, field_path="changeType", original_value=change_type)
        self.change_type = change_type

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["change_type"] = self.change_type
        return d


class ConfigError(ProposalEngineError):
    """Malformed ValidationConfig wire data."""
    pass


class TransformerError(ProposalEngineError):
    """
    A transformer failed while producing a value.

    Always caught by apply_transformer(), which logs it and falls back to
    the untransformed value.
    """

    def __init__(
        self,
        message: str,
        transformer_key: Optional[str],
        field_path: Optional[str] = None,
        original_value: Optional[Any] = None,
    ):
        super().__init__(message, field_path, original_value)
        self.transformer_key = transformer_key

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["transformer_key"] = self.transformer_key
        return d
