"""HTTP API routers and shared request dependencies."""
