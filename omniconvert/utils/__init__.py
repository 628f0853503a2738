"""Shared utilities: logging, error handling, temp storage, MIME and HTTP helpers."""
