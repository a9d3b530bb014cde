"""FastAPI routes for the sync engine."""
