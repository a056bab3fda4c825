"""FastAPI application for SafeScan."""
