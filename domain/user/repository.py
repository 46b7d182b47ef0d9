"""
User repository interface
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import User


class UserRepository(ABC):
    """User store - only what dispatching needs"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Insert a user"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Fetch by id"""
        pass

    @abstractmethod
    async def list_eligible_drivers(self) -> List[User]:
        """Active users holding the driver role"""
        pass
