from src.db.repositories.admin import AdminRepository
from src.db.repositories.events import EventRepository
from src.db.repositories.groups import GroupRepository
from src.db.repositories.users import UserRepository

__all__ = ["AdminRepository", "EventRepository", "GroupRepository", "UserRepository"]
