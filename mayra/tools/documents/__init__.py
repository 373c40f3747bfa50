"""Document export tools package."""
