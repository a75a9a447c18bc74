# chatrooms/services/message_store.py

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from chatrooms.core.database import build_session_factory, health_check_db, init_models
from chatrooms.core.exceptions import PersistenceError, ValidationError
from chatrooms.models.db import Message, User
from chatrooms.models.models import UserSummary

logger = logging.getLogger(__name__)

# ============================================================================
# MESSAGE PERSISTENCE GATEWAY
# ============================================================================

class MessageStore:
    """
    Durable storage for chat messages and the users they reference.

    Messages are created once and never updated by the chat layer. User
    references (sender/receiver) are stored as bare ids and resolved in a
    separate step with resolve_users(), so a message can be written even
    when the user lookup would fail.

    Every SQLAlchemy failure is re-raised as PersistenceError; callers
    never see driver exceptions.
    """

    def __init__(self, bind: AsyncEngine) -> None:
        self.engine = bind
        self.session_factory = build_session_factory(bind)

    async def create_schema(self) -> None:
        await init_models(self.engine)

    async def ping(self) -> bool:
        return await health_check_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    async def create_user(self, name: str, email: str, role: str = "user") -> User:
        user = User(name=name, email=email.strip().lower(), role=role)
        try:
            async with self.session_factory() as session:
                session.add(user)
                await session.commit()
        except IntegrityError:
            raise ValidationError(f"User with email {email} already exists")
        except SQLAlchemyError as e:
            logger.error("Failed to create user %s: %s", email, e)
            raise PersistenceError("Failed to create user") from e
        logger.info("✓ Created user %s", user.id)
        return user

    async def create_message(
        self,
        sender: str,
        content: str,
        receiver: Optional[str] = None,
        room: Optional[str] = None,
    ) -> Message:
        """
        Persist a message. Returns only after the commit succeeded.

        Raises:
            PersistenceError: the write did not complete
        """
        message = Message(sender_id=sender, receiver_id=receiver, content=content, room=room)
        try:
            async with self.session_factory() as session:
                session.add(message)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to persist message from %s: %s", sender, e)
            raise PersistenceError("Failed to persist message") from e
        return message

    async def resolve_users(self, user_ids: Iterable[Optional[str]]) -> Dict[str, UserSummary]:
        """Look up display attributes for the given ids. Unknown ids are left out."""
        wanted = {uid for uid in user_ids if uid}
        if not wanted:
            return {}

        try:
            async with self.session_factory() as session:
                result = await session.execute(select(User).where(User.id.in_(wanted)))
                users = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to resolve users") from e

        return {u.id: UserSummary(id=u.id, name=u.name, email=u.email) for u in users}

    async def list_messages(
        self,
        room: Optional[str] = None,
        participant: Optional[str] = None,
        limit: int = 50,
    ) -> List[Message]:
        """
        Newest-first history.

        room filters to one room; participant filters to messages the user
        sent or received. Both may be combined.
        """
        query = select(Message)
        if room:
            query = query.where(Message.room == room)
        if participant:
            query = query.where(or_(Message.sender_id == participant, Message.receiver_id == participant))
        query = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load messages") from e
