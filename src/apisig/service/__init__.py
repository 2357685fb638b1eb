"""Protected HTTP service."""
