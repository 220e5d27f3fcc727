"""REST client for the capture service."""
