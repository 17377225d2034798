"""Input sanitization."""
