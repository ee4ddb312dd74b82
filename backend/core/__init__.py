"""Shared data model, errors and buffer ownership."""
