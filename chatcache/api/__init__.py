"""FastAPI operational surface for chatcache."""

from chatcache.api.app import create_app

__all__ = ["create_app"]
