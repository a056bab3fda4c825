"""API routers."""

from safescan.api.routers import ai, lookup, scan, scans

__all__ = ["ai", "lookup", "scan", "scans"]
