"""Database engine, session factory and helpers."""
