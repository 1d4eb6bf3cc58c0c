"""Typed domain core: models, errors and ports."""
