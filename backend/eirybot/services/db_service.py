# /eirybot/services/db_service.py

import logging
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, OperationFailure
from typing import List, Optional, Dict, Any, Tuple

from eirybot.config.settings import settings
from eirybot.services.errors import DuplicateEventError
from eirybot.utils.metrics import database_operations_counter

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "eirybot_demo"
EVENTS_PAGE_SIZE = 100
EVENTS_MAX_PAGE_SIZE = 500
LEGACY_BOT_MESSAGE_INDEX = "unique_bot_message_per_step"


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    """Pagination info returned next to a page of results."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if total > 0 else 0
    }


class DatabaseService:
    """
    Storage for demo sessions (one document per session, keyed by sessionId)
    and the append-only event log (one document per event, queried by
    sessionId in timestamp order).
    """

    def __init__(self, mongo_uri: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                tls=settings.mongo_ssl,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                tz_aware=True
            )
            self.db = self.client.get_default_database(default=DEFAULT_DATABASE)
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    @property
    def sessions(self):
        return self.db[settings.sessions_collection]

    @property
    def events(self):
        return self.db[settings.events_collection]

    # ==================== Index Management ====================

    async def create_indexes(self) -> None:
        """Create all necessary database indexes on startup."""
        indexes = [
            (settings.sessions_collection, [("sessionId", ASCENDING)], {"unique": True}),
            # Advisory retention: MongoDB drops sessions once expiresAt has passed
            (settings.sessions_collection, [("expiresAt", ASCENDING)], {"expireAfterSeconds": 0}),
            (settings.events_collection, [("eventId", ASCENDING)], {"unique": True}),
            (settings.events_collection, [("sessionId", ASCENDING), ("ts", ASCENDING)], {}),
            # One bot message per step per session turn; revisiting a step in a later turn is allowed
            (
                settings.events_collection,
                [("sessionId", ASCENDING), ("stepId", ASCENDING), ("turn", ASCENDING)],
                {
                    "unique": True,
                    "name": "unique_bot_message_per_turn",
                    "partialFilterExpression": {"type": "bot_message", "stepId": {"$exists": True}},
                },
            ),
        ]

        # Superseded by unique_bot_message_per_turn; it would block revisiting a step
        try:
            await self.events.drop_index(LEGACY_BOT_MESSAGE_INDEX)
            logger.info(f"Dropped legacy index {LEGACY_BOT_MESSAGE_INDEX}")
        except OperationFailure:
            logger.debug(f"Legacy index {LEGACY_BOT_MESSAGE_INDEX} not present")

        for collection, keys, options in indexes:
            try:
                await self.db[collection].create_index(keys, **options)
                logger.debug(f"Created index on {collection}: {keys}")
            except Exception as e:
                logger.error(f"Failed to create index on {collection} {keys}: {e}")

        logger.info("Database indexes created successfully.")

    async def health_check(self) -> bool:
        """
        Check MongoDB connection health.

        Returns:
            True if connection is healthy
        """
        try:
            await self.client.admin.command('ping')
            return True
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return False

    # ==================== Session Operations ====================

    async def insert_session(self, session_doc: Dict[str, Any]) -> None:
        """
        Store a new session document.

        Args:
            session_doc: Session serialized with its camelCase field names
        """
        await self.sessions.insert_one(dict(session_doc))
        database_operations_counter.labels(operation="insert_session", status="success").inc()

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a session by id.

        Args:
            session_id: Session identifier

        Returns:
            Session document without the Mongo _id, or None
        """
        session = await self.sessions.find_one({"sessionId": session_id}, {"_id": 0})
        database_operations_counter.labels(
            operation="get_session", status="success" if session else "not_found"
        ).inc()
        return session

    async def update_session(self, session_id: str, updates: Dict[str, Any]) -> bool:
        """
        Apply a $set update to a session.

        Args:
            session_id: Session identifier
            updates: Fields to set; dotted keys such as "lead.name" address nested fields

        Returns:
            True if a session matched
        """
        result = await self.sessions.update_one({"sessionId": session_id}, {"$set": updates})
        database_operations_counter.labels(operation="update_session", status="success").inc()
        return result.matched_count > 0

    async def update_session_if_cursor(
        self,
        session_id: str,
        expected: Dict[str, Any],
        updates: Dict[str, Any]
    ) -> bool:
        """
        Apply a $set update only if the session still has the expected values.

        Used to apply runner transitions: `expected` carries the cursor and
        status the transition was computed from, so a concurrent writer that
        already moved the session makes this update match nothing.

        Args:
            session_id: Session identifier
            expected: Field values the stored session must still have
            updates: Fields to set

        Returns:
            True if the update was applied
        """
        query = {"sessionId": session_id, **expected}
        result = await self.sessions.update_one(query, {"$set": updates})
        applied = result.matched_count > 0
        database_operations_counter.labels(
            operation="update_session_if_cursor", status="success" if applied else "conflict"
        ).inc()
        return applied

    # ==================== Event Log Operations ====================

    async def insert_event(self, event_doc: Dict[str, Any]) -> None:
        """
        Append an event to the log.

        Raises:
            DuplicateEventError: If a bot message for the same step and turn is already logged
        """
        try:
            await self.events.insert_one(dict(event_doc))
        except DuplicateKeyError:
            database_operations_counter.labels(operation="insert_event", status="duplicate").inc()
            raise DuplicateEventError(event_doc.get("sessionId"), event_doc.get("stepId"))
        database_operations_counter.labels(operation="insert_event", status="success").inc()

    async def delete_event(self, event_id: str) -> None:
        """Remove an event whose transition could not be applied."""
        await self.events.delete_one({"eventId": event_id})
        database_operations_counter.labels(operation="delete_event", status="success").inc()

    async def get_events(
        self,
        session_id: str,
        page: int = 1,
        limit: int = EVENTS_PAGE_SIZE
    ) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        """
        Get a page of a session's events, oldest first.

        Args:
            session_id: Session identifier
            page: Page number (1-indexed)
            limit: Events per page

        Returns:
            Tuple of (event documents without the Mongo _id, pagination info)
        """
        skip = (page - 1) * limit

        pipeline = [
            {"$match": {"sessionId": session_id}},
            {
                "$facet": {
                    "events": [
                        {"$sort": {"ts": ASCENDING}},
                        {"$skip": skip},
                        {"$limit": limit},
                        {"$project": {"_id": 0}}
                    ],
                    "total": [{"$count": "count"}]
                }
            }
        ]

        result = await self.events.aggregate(pipeline).to_list(length=1)
        database_operations_counter.labels(operation="get_events", status="success").inc()

        if not result:
            return [], paginate(page, limit, 0)

        events = result[0].get("events", [])
        # $count yields no document at all for an empty match
        total_count = (result[0].get("total") or [{}])[0].get("count", 0)
        return events, paginate(page, limit, total_count)


# Globally accessible instance
db_service = DatabaseService(settings.mongo_uri)
