"""Cache backends for virtual-field values and materialised sort orders."""

from .memory import InMemoryCacheService
from .redis import RedisCacheService

__all__ = ["InMemoryCacheService", "RedisCacheService"]
