"""API schemas package."""
