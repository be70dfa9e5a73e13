"""Resilience and streaming core: breaker, pipeline, context window and sessions."""
