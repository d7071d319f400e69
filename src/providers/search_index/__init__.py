"""Search index providers."""
