import time
from typing import Any, Dict, List, Optional

from pymongo import AsyncMongoClient, IndexModel
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

from order_worker.core.exceptions import RepositoryError
from order_worker.core.logging import get_logger

logger = get_logger(__name__)


class MongoDBClient:
    """
    Async MongoDB client shared by the repositories.

    Wraps pymongo's AsyncMongoClient with index management and health checks.
    """

    def __init__(
        self,
        connection_uri: str,
        database_name: str,
        pool_size: int = 10,
        connect_timeout: int = 5000,
        server_selection_timeout: int = 5000,
        client: Optional[AsyncMongoClient] = None,
    ):
        """
        Initialize MongoDB client.

        Args:
            connection_uri: MongoDB connection URI
            database_name: Name of the database to use
            pool_size: Maximum size of the connection pool
            connect_timeout: Connection timeout (ms)
            server_selection_timeout: Server selection timeout (ms)
            client: Preconfigured AsyncMongoClient, used by tests
        """
        self.connection_uri = connection_uri
        self.database_name = database_name
        self.pool_size = pool_size
        self._client = client or AsyncMongoClient(
            connection_uri,
            maxPoolSize=pool_size,
            connectTimeoutMS=connect_timeout,
            serverSelectionTimeoutMS=server_selection_timeout,
            tz_aware=True,
        )

    @classmethod
    def from_settings(cls, settings) -> "MongoDBClient":
        return cls(settings.MONGODB_URI, settings.MONGODB_DATABASE)

    def get_database(self) -> AsyncDatabase:
        return self._client[self.database_name]

    def get_collection(self, collection_name: str) -> AsyncCollection:
        return self.get_database()[collection_name]

    async def create_indexes(self, collection_name: str, indexes: List[IndexModel]) -> List[str]:
        """
        Create indexes for a MongoDB collection.

        Args:
            collection_name: Name of the collection
            indexes: Index specifications

        Returns:
            List of created index names

        Raises:
            RepositoryError: If index creation fails
        """
        try:
            result = await self.get_collection(collection_name).create_indexes(indexes)
            logger.info(f"Created {len(indexes)} indexes for collection {collection_name}")
            return result
        except Exception as e:
            logger.error(f"Failed to create indexes for collection {collection_name}: {str(e)}")
            raise RepositoryError(f"Failed to create indexes: {str(e)}", original_exception=e)

    async def health_check(self) -> Dict[str, Any]:
        """
        Check MongoDB health status.

        Returns:
            Dictionary containing health check results
        """
        try:
            start_time = time.time()
            await self._client.admin.command("ping")
            response_time = time.time() - start_time
            return {
                "status": "healthy",
                "response_time_ms": round(response_time * 1000, 2),
                "database": self.database_name,
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    async def close(self) -> None:
        await self._client.close()
        logger.info("MongoDB connection closed")
