"""Core configuration, caching and shared utilities."""
