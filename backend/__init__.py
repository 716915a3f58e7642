"""FastAPI surface and PostgreSQL store for the hierarchy service."""
