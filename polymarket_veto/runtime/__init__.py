"""Guarded execution runtime."""
