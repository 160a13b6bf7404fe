"""Empirical route testing."""

from waypost.routing.tester import RouteTester, content_matches, generate_test_path

__all__ = ["RouteTester", "content_matches", "generate_test_path"]
