from .cache import ICacheService

__all__ = ["ICacheService"]
