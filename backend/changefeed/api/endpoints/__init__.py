# API endpoint routers
from . import checkpoints, health, sync, sync_status

__all__ = ["checkpoints", "health", "sync", "sync_status"]
