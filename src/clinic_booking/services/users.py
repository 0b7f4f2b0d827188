import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_booking.db import get_async_session
from clinic_booking.dto import UserDTO, to_user
from clinic_booking.models import User, UserRole
from clinic_booking.services.errors import InvalidInput, NotFound
from clinic_booking.utils.contacts import normalize_tg_username
from clinic_booking.utils.time import to_minutes

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    "name",
    "phone_number",
    "tg_id",
    "tg_username",
    "role",
    "working",
    "work_start_time",
    "work_end_time",
}


class UserRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _one(self, stmt) -> Optional[UserDTO]:
        async with get_async_session(self._session_factory) as session:
            row = (await session.execute(stmt)).scalars().first()
            return to_user(row) if row is not None else None

    async def get(self, user_id: int) -> Optional[UserDTO]:
        return await self._one(select(User).where(User.id == user_id))

    async def find_by_phone(self, phone_number: Optional[str]) -> Optional[UserDTO]:
        if not phone_number:
            return None
        return await self._one(select(User).where(User.phone_number == phone_number))

    async def find_by_tg_id(self, tg_id) -> Optional[UserDTO]:
        if tg_id is None:
            return None
        return await self._one(select(User).where(User.tg_id == str(tg_id)))

    async def find_default_provider(self) -> Optional[UserDTO]:
        return await self._one(
            select(User)
            .where(User.role == UserRole.DOCTOR)
            .order_by(User.created_at.asc(), User.id.asc())
            .limit(1)
        )

    async def find_by_role(self, role: UserRole) -> list[UserDTO]:
        async with get_async_session(self._session_factory) as session:
            rows = (await session.execute(select(User).where(User.role == role).order_by(User.id))).scalars().all()
            return [to_user(row) for row in rows]

    async def _insert(self, **values) -> UserDTO:
        async with get_async_session(self._session_factory) as session:
            row = User(**values)
            session.add(row)
            await session.commit()
            return to_user(row)

    async def create_client(self, *, phone_number: str, name: Optional[str] = None) -> UserDTO:
        """Create a CLIENT keyed by phone; a concurrent winner is returned instead."""
        try:
            user = await self._insert(phone_number=phone_number, name=name, role=UserRole.CLIENT)
            logger.info("users.create_client: id=%s phone=%s", user.id, phone_number)
            return user
        except IntegrityError:
            logger.warning("users.create_client: phone race, re-reading phone=%s", phone_number)
            existing = await self.find_by_phone(phone_number)
            if existing is None:
                raise
            if name and existing.name != name:
                existing = await self.update(existing.id, name=name)
            return existing

    async def create_provider(
        self,
        *,
        name: str,
        phone_number: Optional[str] = None,
        work_start_time: Optional[str] = None,
        work_end_time: Optional[str] = None,
        working: bool = True,
    ) -> UserDTO:
        for value in (work_start_time, work_end_time):
            if value is not None:
                to_minutes(value)
        user = await self._insert(
            name=name,
            phone_number=phone_number,
            role=UserRole.DOCTOR,
            working=working,
            work_start_time=work_start_time,
            work_end_time=work_end_time,
        )
        logger.info("users.create_provider: id=%s name=%s", user.id, name)
        return user

    async def update(self, user_id: int, **values) -> UserDTO:
        unknown = set(values) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidInput(f"cannot update fields: {sorted(unknown)}")
        if "tg_username" in values:
            values["tg_username"] = normalize_tg_username(values["tg_username"])
        async with get_async_session(self._session_factory) as session:
            row = await session.get(User, user_id)
            if row is None:
                raise NotFound("user", user_id)
            for key, value in values.items():
                if value is not None:
                    setattr(row, key, value)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise InvalidInput("phone number or telegram account already used by another user") from exc
            return to_user(row)

    async def register_telegram_user(
        self, *, tg_id, name: Optional[str] = None, tg_username: Optional[str] = None
    ) -> UserDTO:
        """Load or create the client behind a chat identity, refreshing name/username."""
        tg_id = str(tg_id)
        tg_username = normalize_tg_username(tg_username)
        async with get_async_session(self._session_factory) as session:
            user = (await session.execute(select(User).where(User.tg_id == tg_id))).scalar_one_or_none()
            updated = False
            if user is None:
                user = User(tg_id=tg_id, name=name, tg_username=tg_username, role=UserRole.CLIENT)
                session.add(user)
                updated = True
            else:
                if name and user.name != name:
                    user.name = name
                    updated = True
                if tg_username and user.tg_username != tg_username:
                    user.tg_username = tg_username
                    updated = True
            if updated:
                await session.commit()
            return to_user(user)

    async def attach_phone(self, user_id: int, phone_number: str) -> UserDTO:
        """Give a chat user a phone; if a phone-only record already exists, merge into it."""
        async with get_async_session(self._session_factory) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("user", user_id)
            if user.phone_number == phone_number:
                return to_user(user)
            holder = (
                await session.execute(select(User).where(User.phone_number == phone_number))
            ).scalar_one_or_none()
            if holder is not None and holder.id != user.id:
                if holder.tg_id or user.phone_number:
                    raise InvalidInput("phone number already belongs to another user")
                # запись, созданная по телефону (например, с сайта), забирает tg_id
                tg_id, tg_username, name = user.tg_id, user.tg_username, user.name
                await session.delete(user)
                await session.flush()
                holder.tg_id = tg_id
                holder.tg_username = tg_username
                holder.name = name or holder.name
                await session.commit()
                logger.info("users.attach_phone: merged chat user=%s into id=%s", user_id, holder.id)
                return to_user(holder)
            user.phone_number = phone_number
            await session.commit()
            return to_user(user)
