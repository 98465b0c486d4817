"""
Environment settings for proposal evaluation.

Read once at import time. Per-comparison configuration (ignore paths,
transformers, normalization) is passed in memory, never read from here.
"""
import os

# Log every expected/actual proposal before comparing
LOG_DETAILS = os.getenv("PROPOSAL_EVAL_LOG_DETAILS", "false").lower() == "true"

# JSON Lines file for comparison audit events (unset = no file sink)
AUDIT_FILE = os.getenv("PROPOSAL_EVAL_AUDIT_FILE") or None

AUDIT_LOGGING = os.getenv("PROPOSAL_EVAL_AUDIT_LOGGING", "true").lower() == "true"
