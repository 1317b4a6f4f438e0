"""API v1 routers; prefixes are applied when mounting in main.py."""
