"""Read-only access to MDX posts."""
