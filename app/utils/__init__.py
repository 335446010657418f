"""Utility helpers: email rendering/transport, maintenance sweeps."""

__all__: list[str] = []
