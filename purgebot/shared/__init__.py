"""Persistence layer: pool, cache, models, repositories and migrations."""
