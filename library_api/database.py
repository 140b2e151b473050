"""
MongoDB connectivity for the FastAPI application.
Owns the single motor client shared by all requests.
"""

from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from library_api.exceptions import StorageError

logger = structlog.get_logger(__name__)


class MongoDBGateway:
    """
    Async MongoDB gateway for the books collection.
    Handles connection lifecycle and the per-request connectivity check.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        collection_name: str = "books",
        timeout_ms: int = 5000
    ):
        """
        Initialize MongoDB gateway.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the books collection
            timeout_ms: Server selection timeout passed to the driver
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.timeout_ms = timeout_ms
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @property
    def books(self) -> AsyncIOMotorCollection:
        """The books collection."""
        if self.database is None:
            raise StorageError("Database is not connected")
        return self.database[self.collection_name]

    async def connect(self) -> None:
        """Establish connection to MongoDB and verify it with a ping."""
        try:
            self.client = AsyncIOMotorClient(
                self.connection_url,
                serverSelectionTimeoutMS=self.timeout_ms
            )
            self.database = self.client[self.database_name]
            await self.database.command("ping")
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)
        except PyMongoError as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise StorageError(str(e)) from e

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client is not None:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    async def check_connection(self) -> None:
        """
        Verify the database answers a ping.

        Raises:
            StorageError: If the gateway is not connected or the ping fails
        """
        if self.database is None:
            raise StorageError("Database is not connected")
        try:
            await self.database.command("ping")
        except PyMongoError as e:
            logger.error("Database connection check failed", error=str(e))
            raise StorageError(str(e)) from e

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.check_connection()
            books_count = await self.books.count_documents({})
            return {
                "status": "healthy",
                "books_collection": "accessible",
                "books_count": books_count
            }
        except (StorageError, PyMongoError) as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
