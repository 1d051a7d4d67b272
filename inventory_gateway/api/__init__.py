"""HTTP API: FastAPI routers and application factory."""
