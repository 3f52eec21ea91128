"""Configuration, database, errors, observability and request plumbing."""
