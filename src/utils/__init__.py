"""Shared helpers used by the photo grouping package."""
