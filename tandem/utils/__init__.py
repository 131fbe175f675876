"""Shared utilities for token estimation and serialization."""
