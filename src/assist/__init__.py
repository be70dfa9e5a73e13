"""Assist - resilient streaming chat over an LLM provider."""

__version__ = "0.1.0"
