"""Versioned API (v1). Routers live in `app.api.v1.routers`."""
