"""Document schemas for the party inventory core."""
