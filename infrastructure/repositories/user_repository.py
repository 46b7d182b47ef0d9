"""
User repository implementation - SQLAlchemy
"""
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DomainValidationException
from domain.user.entity import User, UserRole
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """User repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            email=model.email,
            phone=model.phone,
            roles=frozenset(UserRole(r) for r in model.roles or ()),
            is_active=model.is_active,
            created_at=model.created_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        return UserModel(
            id=entity.id,
            name=entity.name,
            email=entity.email,
            phone=entity.phone,
            roles=sorted(r.value for r in entity.roles),
            is_active=entity.is_active,
            created_at=entity.created_at or datetime.now(timezone.utc),
        )

    async def create(self, user: User) -> User:
        try:
            db_user = self._to_model(user)
            self.session.add(db_user)
            await self.session.flush()
            await self.session.refresh(db_user)
            logger.info("user_created", user_id=db_user.id, roles=db_user.roles)
            return self._to_entity(db_user)
        except IntegrityError:
            await self.session.rollback()
            raise DomainValidationException(f"User {user.email} already exists", field="email")

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def list_eligible_drivers(self) -> List[User]:
        # roles is a JSON array; filter the role in Python to stay dialect neutral
        result = await self.session.execute(
            select(UserModel).where(UserModel.is_active.is_(True)).order_by(UserModel.id)
        )
        users = [self._to_entity(m) for m in result.scalars().all()]
        return [u for u in users if u.has_role(UserRole.DRIVER)]
