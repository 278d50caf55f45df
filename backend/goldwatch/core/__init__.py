"""Core cross-cutting helpers: exceptions and logging setup."""
