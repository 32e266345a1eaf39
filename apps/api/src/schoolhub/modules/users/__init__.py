"""
Users module - User accounts and login security state.
"""

from schoolhub.modules.users.models import User, UserRole
from schoolhub.modules.users.repository import UserRepository

__all__ = ["User", "UserRole", "UserRepository"]
