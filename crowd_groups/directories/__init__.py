"""Directory backends that list a user's groups page by page."""
