"""Test fixture helpers."""
