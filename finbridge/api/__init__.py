"""HTTP surface under /api."""
