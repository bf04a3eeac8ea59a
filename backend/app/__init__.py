"""Wellness Hub upload service backend."""
