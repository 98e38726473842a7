"""Shared pytest configuration helpers."""
