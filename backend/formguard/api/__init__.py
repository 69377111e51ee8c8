"""Service-level HTTP routers."""
