"""Upstream API key pool service: key lifecycle, health tests, auto-reactivation."""
