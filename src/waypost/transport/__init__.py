"""Outbound HTTP port for waypost."""

from waypost.transport.http import HttpClient, HttpResponse, HttpxClient

__all__ = ["HttpClient", "HttpResponse", "HttpxClient"]
