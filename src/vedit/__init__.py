"""Agentic edit orchestrator for visual page editing."""

__version__ = "0.1.0"
