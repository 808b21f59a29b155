"""Authentication services."""
