"""Incremental embedding sync for GitHub repositories."""
