"""
Pytest fixtures for proposal reconciliation tests.
"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from evaluation.proposals.audit import MemoryAuditSink, get_audit_manager
from evaluation.proposals.config import ValidationConfig, build_default_validation_config
from evaluation.proposals.transformers import build_default_transformer_registry


@pytest.fixture
def registry():
    """Fresh transformer registry (dynamic template entries are cached per instance)."""
    return build_default_transformer_registry()


@pytest.fixture
def fixed_date():
    """2024-09-18 10:30 UTC."""
    return datetime(2024, 9, 18, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def default_config():
    return build_default_validation_config()


@pytest.fixture
def empty_config():
    return ValidationConfig()


@pytest.fixture
def memory_audit():
    """Memory-based audit sink for testing."""
    sink = MemoryAuditSink()
    manager = get_audit_manager()
    manager.add_sink(sink)
    yield sink
    manager.remove_sink(sink)
    sink.clear()


@pytest.fixture
def raw_change_proposal():
    """Change proposal as emitted by the agent."""
    return {
        "id": "prop-1",
        "changeType": "change",
        "createdAt": "2024-09-18T10:00:00.000Z",
        "description": "Raise salary to 4500",
        "status": "pending",
        "relatedUserId": "emp-1",
        "quote": "please raise the salary to 4500",
        "changedField": "salary",
        "newValue": "4500",
        "mutationQuery": {
            "query": "mutation UpdatePayment($data: PaymentInput!) { updatePayment(data: $data) { id } }",
            "variables": {"data": {"id": "pay-1", "amount": 4500, "effectiveDate": "2024-10-01T00:00:00.000Z"}},
            "propertyPath": "employee.payments[0].amount",
        },
    }


@pytest.fixture
def raw_creation_proposal():
    """Creation proposal as emitted by the agent."""
    return {
        "id": "prop-2",
        "changeType": "creation",
        "createdAt": "2024-09-18T10:00:00.000Z",
        "description": "Add a bonus payment",
        "status": "pending",
        "relatedUserId": "emp-2",
        "properties": {"amount": "500"},
        "mutationQuery": {
            "query": "mutation CreatePayment($data: PaymentInput!) { createPayment(data: $data) { id } }",
            "variables": {"data": {"amount": 500, "type": "bonus"}},
        },
    }


@pytest.fixture
def normalized_change():
    return {
        "changeType": "change",
        "changedField": "salary",
        "newValue": "4500",
        "relatedUserId": "emp-1",
    }


@pytest.fixture
def normalized_creation():
    return {
        "changeType": "creation",
        "relatedUserId": "u1",
        "mutationVariables": {"data": {"amount": 500, "type": "bonus"}},
    }
