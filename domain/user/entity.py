"""
User domain entity - customers, drivers and admins
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import re

from domain.common.exceptions import DomainValidationException


class UserRole(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


@dataclass
class User:
    """User entity"""

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    roles: frozenset[UserRole] = field(default_factory=lambda: frozenset({UserRole.CUSTOMER}))
    is_active: bool = True
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.roles = frozenset(UserRole(r) for r in self.roles)
        self.validate_email()

    def validate_email(self) -> None:
        """Business rule: email format"""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, self.email):
            raise DomainValidationException(f"Invalid email: {self.email}", field="email")

    def has_role(self, role: UserRole) -> bool:
        return UserRole(role) in self.roles

    @property
    def is_eligible_driver(self) -> bool:
        """Active user holding the driver role"""
        return self.is_active and UserRole.DRIVER in self.roles
