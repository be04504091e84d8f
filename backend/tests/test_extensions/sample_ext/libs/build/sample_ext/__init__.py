"""Sample extension used by the end-to-end tests."""
