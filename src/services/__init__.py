"""
Service Layer Package

Business logic sitting between the update dispatcher and the data access layer.

Core Services:
- AntiSpamChecker: CAS lookups with caching and request coalescing
- AuthService: permission levels for bot actions
- RateLimiter: per-identifier sliding request windows in Redis
- ServiceContainer: lazy wiring of services and repositories
"""

from src.services.antispam import AntiSpamChecker
from src.services.auth import AuthService, Permission
from src.services.container import ServiceContainer, get_container, init_container
from src.services.rate_limit import RateLimiter

__all__ = [
    "AntiSpamChecker",
    "AuthService",
    "Permission",
    "RateLimiter",
    "ServiceContainer",
    "get_container",
    "init_container",
]
