"""
Backend package for the stories content service.

This package provides a FastAPI application on top of relational storage,
an object store for images/audio and a Redis list cache, with an
orchestration layer that keeps the three consistent.
"""
