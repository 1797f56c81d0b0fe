"""Pytest configuration for all tests."""
