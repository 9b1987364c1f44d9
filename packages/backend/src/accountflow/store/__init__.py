"""Profile store adapter."""
