"""Dextra HTTP server (FastAPI)."""
