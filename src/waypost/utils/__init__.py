"""Utility helpers for waypost."""
