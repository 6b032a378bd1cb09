"""
app/db/user_repository.py

Purpose: User persistence

- Last-write-wins profile upsert
- Referral code storage and lookup
- Demo consultation flag
"""

from datetime import datetime
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.logging import get_logger, LogContext
from app.db.mongo import get_users_collection
from app.models.user import User

logger = get_logger(__name__)


class UserRepository:
    """
    Access to the `users` collection, keyed by `chat_id`.
    """

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def collection(self):
        if self._collection is not None:
            return self._collection
        return get_users_collection()

    async def upsert(
        self,
        chat_id: int,
        handle: str,
        display_name: str,
        seen_at: Optional[datetime] = None,
    ) -> None:
        """
        Creates the user or refreshes its profile.

        The refresh only applies when `seen_at` is not older than the stored
        `updated_at`, so a delayed observation never overwrites newer data.
        """
        seen_at = seen_at or datetime.utcnow()
        profile = {"handle": handle, "display_name": display_name, "updated_at": seen_at}

        with LogContext(client_id=chat_id):
            result = await self.collection.update_one(
                {"chat_id": chat_id, "updated_at": {"$lte": seen_at}},
                {"$set": profile}
            )
            if result.matched_count:
                return

            insert = {
                **profile,
                "demo_used": False,
                "created_at": seen_at,
            }
            try:
                result = await self.collection.update_one(
                    {"chat_id": chat_id},
                    {"$setOnInsert": insert},
                    upsert=True
                )
                if result.upserted_id is not None:
                    logger.info("New user created")
                else:
                    logger.debug("Stale profile observation ignored")
            except DuplicateKeyError:
                # A concurrent upsert created the user first
                await self.collection.update_one(
                    {"chat_id": chat_id, "updated_at": {"$lte": seen_at}},
                    {"$set": profile}
                )

    async def get(self, chat_id: int) -> Optional[User]:
        doc = await self.collection.find_one({"chat_id": chat_id})
        return User.from_document(doc) if doc else None

    async def get_by_referral_code(self, code: str) -> Optional[User]:
        doc = await self.collection.find_one({"referral_code": code})
        return User.from_document(doc) if doc else None

    async def referral_code_exists(self, code: str) -> bool:
        return await self.collection.find_one({"referral_code": code}) is not None

    async def set_referral_code_if_absent(self, chat_id: int, code: str) -> Optional[str]:
        """
        Stores `code` unless the user already has one.

        Returns:
            The code the user ends up with, or None when `code` is
            already assigned to another user
        """
        try:
            doc = await self.collection.find_one_and_update(
                {"chat_id": chat_id, "referral_code": {"$exists": False}},
                {"$set": {"referral_code": code}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            logger.warning(f"Referral code {code} already assigned", extra={"client_id": chat_id})
            return None

        if doc:
            logger.info("Referral code assigned", extra={"client_id": chat_id})
            return doc["referral_code"]

        user = await self.get(chat_id)
        return user.referral_code if user else None

    async def mark_demo_used(self, chat_id: int) -> bool:
        """
        Sets the demo flag.

        Returns:
            True if this call consumed the demo, False if it was already used
        """
        result = await self.collection.update_one(
            {"chat_id": chat_id, "demo_used": {"$ne": True}},
            {"$set": {"demo_used": True}}
        )
        return result.modified_count > 0
