from . import admin, catalog, worker

__all__ = ["admin", "catalog", "worker"]
