"""
Video Session Store
Versioned persistence of session aggregates with optimistic concurrency
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import BulkWriteError
from motor.motor_asyncio import AsyncIOMotorCollection

from ..config.database import get_database
from ..config.settings import settings
from ..utils.exceptions import SessionNotFoundError, SessionConflictError
from ..utils.time_utils import utc_now

logger = logging.getLogger(__name__)

# A mutation receives the freshly loaded document and returns the document to
# persist, or None when there is nothing to write.
Mutation = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


class SessionStore:
    """Keyed storage of video session documents"""

    def __init__(
        self,
        collection: Optional[AsyncIOMotorCollection] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None
    ):
        self.collection = collection
        self.max_retries = max_retries or settings.session_write_max_retries
        self.retry_delay_ms = settings.session_write_retry_delay_ms if retry_delay_ms is None else retry_delay_ms

    def get_collection(self) -> AsyncIOMotorCollection:
        """Get the video_sessions collection"""
        if self.collection is None:
            self.collection = get_database().video_sessions
        return self.collection

    @staticmethod
    def to_object_id(session_id: Any) -> ObjectId:
        """Parse a session id, treating malformed ids as unknown sessions"""
        if isinstance(session_id, ObjectId):
            return session_id
        try:
            return ObjectId(session_id)
        except (InvalidId, TypeError):
            raise SessionNotFoundError(str(session_id))

    # ============================================================================
    # READS
    # ============================================================================

    async def load(self, session_id: Any) -> Optional[Dict[str, Any]]:
        """Load one session document or None"""
        return await self.get_collection().find_one({"_id": self.to_object_id(session_id)})

    async def load_or_raise(self, session_id: Any) -> Dict[str, Any]:
        session = await self.load(session_id)
        if not session:
            raise SessionNotFoundError(str(session_id))
        return session

    async def find(
        self,
        query: Dict[str, Any],
        sort: List[Tuple[str, int]],
        skip: int = 0,
        limit: int = 0
    ) -> List[Dict[str, Any]]:
        cursor = self.get_collection().find(query).sort(sort).skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit or None)

    async def count(self, query: Dict[str, Any]) -> int:
        return await self.get_collection().count_documents(query)

    # ============================================================================
    # WRITES
    # ============================================================================

    async def insert(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new session document at version 1"""
        now = utc_now()
        document.setdefault("_id", ObjectId())
        document.setdefault("created_at", now)
        document["updated_at"] = now
        document["version"] = 1

        await self.get_collection().insert_one(document)
        return document

    async def insert_many(self, documents: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Tuple[Dict[str, Any], str]]]:
        """
        Insert a batch without stopping at the first failure

        Returns:
            (inserted documents, [(failed document, reason), ...])
        """
        if not documents:
            return [], []

        now = utc_now()
        for document in documents:
            document.setdefault("_id", ObjectId())
            document.setdefault("created_at", now)
            document["updated_at"] = now
            document["version"] = 1

        try:
            await self.get_collection().insert_many(documents, ordered=False)
            return documents, []
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            failed_reasons = {err["index"]: err.get("errmsg", "write error") for err in write_errors}
            inserted = [doc for index, doc in enumerate(documents) if index not in failed_reasons]
            failed = [(documents[index], reason) for index, reason in sorted(failed_reasons.items())]
            logger.warning(f"⚠️ Batch insert partially failed: {len(failed)} of {len(documents)} documents")
            return inserted, failed

    async def compare_and_swap(self, document: Dict[str, Any], expected_version: int) -> bool:
        """Replace the document only if nobody else wrote it since it was loaded"""
        document["version"] = expected_version + 1
        document["updated_at"] = utc_now()

        result = await self.get_collection().replace_one(
            {"_id": document["_id"], "version": self._version_filter(expected_version)},
            document
        )
        return result.matched_count == 1

    @staticmethod
    def _version_filter(expected_version: int) -> Any:
        # Documents written before versioning have no stamp at all
        if not expected_version:
            return {"$in": [0, None]}
        return expected_version

    async def delete(self, session_id: Any, expected_version: int) -> bool:
        result = await self.get_collection().delete_one(
            {"_id": self.to_object_id(session_id), "version": self._version_filter(expected_version)}
        )
        return result.deleted_count == 1

    async def mutate(self, session_id: Any, mutation: Mutation) -> Dict[str, Any]:
        """
        Serialized read-modify-write of one session

        The mutation runs against a fresh load on every attempt, so domain
        errors it raises leave stored state untouched. Version conflicts are
        retried with linear backoff until the retry budget runs out.

        Returns:
            The persisted document (or the loaded one when nothing was written)
        """
        object_id = self.to_object_id(session_id)

        for attempt in range(1, self.max_retries + 1):
            current = await self.get_collection().find_one({"_id": object_id})
            if not current:
                raise SessionNotFoundError(str(session_id))

            expected_version = current.get("version", 0)
            updated = mutation(current)

            if updated is None:
                return current

            if await self.compare_and_swap(updated, expected_version):
                return updated

            logger.warning(f"⚠️ Version conflict on session {session_id} (attempt {attempt}/{self.max_retries})")
            if self.retry_delay_ms:
                await asyncio.sleep(self.retry_delay_ms * attempt / 1000)

        logger.error(f"❌ Giving up on session {session_id} after {self.max_retries} conflicting writes")
        raise SessionConflictError(str(session_id), self.max_retries)

    async def remove(self, session_id: Any, guard: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
        """
        Delete a session once guard accepts its current state

        Guard raises a domain error to refuse. Deletion is conditional on the
        version guard saw, with the same retry budget as mutate.
        """
        object_id = self.to_object_id(session_id)

        for attempt in range(1, self.max_retries + 1):
            current = await self.get_collection().find_one({"_id": object_id})
            if not current:
                raise SessionNotFoundError(str(session_id))

            guard(current)

            if await self.delete(object_id, current.get("version", 0)):
                return current

            logger.warning(f"⚠️ Version conflict deleting session {session_id} (attempt {attempt}/{self.max_retries})")
            if self.retry_delay_ms:
                await asyncio.sleep(self.retry_delay_ms * attempt / 1000)

        raise SessionConflictError(str(session_id), self.max_retries)


# Singleton instance
session_store = SessionStore()
