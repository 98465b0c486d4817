"""Evaluation helpers for agent runs."""
