"""Hosting environment detection."""

from waypost.environment.probe import EnvironmentProbe, classify_hosting_tier, classify_platform

__all__ = ["EnvironmentProbe", "classify_hosting_tier", "classify_platform"]
