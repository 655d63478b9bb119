"""Read-only query selectors over the settlement tables."""
