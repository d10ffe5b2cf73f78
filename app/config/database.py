# app/config/database.py - MongoDB connection and video session indexes

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import logging
from .settings import settings

logger = logging.getLogger(__name__)

# Global database client
_client: AsyncIOMotorClient = None
_database: AsyncIOMotorDatabase = None

async def connect_to_mongo():
    """Create database connection"""
    global _client, _database

    try:
        logger.info("🔌 Connecting to MongoDB...")

        _client = AsyncIOMotorClient(
            settings.mongodb_url,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            maxIdleTimeMS=settings.mongodb_max_idle_time_ms,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms
        )

        _database = _client[settings.database_name]

        # Test connection
        await _database.command("ping")
        logger.info("✅ Connected to MongoDB successfully")

    except Exception as e:
        logger.error(f"❌ Failed to connect to MongoDB: {e}")
        raise

def get_database() -> AsyncIOMotorDatabase:
    """Get database instance"""
    global _database
    if _database is None:
        raise RuntimeError("Database not initialized. Call connect_to_mongo() first.")
    return _database

def set_database(database: AsyncIOMotorDatabase):
    """Bind an already-open database handle (tests, embedded use)"""
    global _database
    _database = database

async def close_mongo_connection():
    """Close database connection"""
    global _client, _database
    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("🔌 MongoDB connection closed")

async def create_indexes():
    """Create indexes for the video session collection"""
    try:
        db = get_database()
        logger.info("📊 Creating video session indexes...")

        # ============================================================================
        # VIDEO SESSIONS COLLECTION INDEXES
        # ============================================================================
        await db.video_sessions.create_index("meeting_id", unique=True, sparse=True)
        await db.video_sessions.create_index("instructor_id")
        await db.video_sessions.create_index("course_id")
        await db.video_sessions.create_index("status")
        await db.video_sessions.create_index("parent_session_id")
        await db.video_sessions.create_index("participants.user_id")
        await db.video_sessions.create_index([("scheduled_date", 1), ("scheduled_time", 1)])
        await db.video_sessions.create_index([("instructor_id", 1), ("scheduled_date", 1)])
        await db.video_sessions.create_index([("course_id", 1), ("status", 1)])

        logger.info("✅ Video session indexes created")

    except Exception as e:
        logger.error(f"❌ Error creating indexes: {e}")
        raise

async def test_database_connection() -> bool:
    """Ping the database, used by the health endpoint"""
    try:
        db = get_database()
        await db.command("ping")
        return True

    except Exception as e:
        logger.error(f"❌ Database test failed: {e}")
        return False

# Export functions
__all__ = [
    "get_database",
    "set_database",
    "connect_to_mongo",
    "close_mongo_connection",
    "create_indexes",
    "test_database_connection"
]
