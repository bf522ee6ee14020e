"""Database package: models, engine and session factory."""
