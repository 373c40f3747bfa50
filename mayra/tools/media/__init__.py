"""Media tools package (YouTube, arbitrary media URLs)."""
