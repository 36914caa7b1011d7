from motor.motor_asyncio import AsyncIOMotorClient

from config import MONGO_CONNECTION_STRING, DATABASE_NAME
from database.store import MongoRecordStore
from logging_config import logger

# Collection names
PROJECTS = "projects"
EXPENSES = "expenses"
INVITATIONS = "invitations"
NOTIFICATIONS = "notifications"

# Async client for API operations; tz_aware so stored timestamps come back as UTC
async_client = AsyncIOMotorClient(
    MONGO_CONNECTION_STRING,
    tz_aware=True,
    serverSelectionTimeoutMS=5000,
)
async_db = async_client[DATABASE_NAME]

_store = MongoRecordStore(async_db)

def get_store() -> MongoRecordStore:
    """FastAPI dependency returning the shared record store."""
    return _store

# Create indexes for better performance
async def create_indexes():
    # Project indexes
    await async_db[PROJECTS].create_index("admin_id")
    await async_db[PROJECTS].create_index("members.user_id")

    # Expense indexes
    await async_db[EXPENSES].create_index("project_id")
    await async_db[EXPENSES].create_index([("project_id", 1), ("status", 1)])
    await async_db[EXPENSES].create_index("created_by")

    # Invitation indexes
    await async_db[INVITATIONS].create_index([("project_id", 1), ("status", 1)])

    # Notification indexes
    await async_db[NOTIFICATIONS].create_index("user_id")

# Initialize database
async def init_db():
    try:
        await create_indexes()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
