"""Leaf services used by the remediation orchestrator."""
