# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""
Per-user bookmark persistence on top of a partitioned document store.

Documents look like:
    {"id": "bookmarks_{userId}", "userId": ..., "type": "bookmarks", "bookmarks": [...], "updatedAt": ...}
and are partitioned by `userId`, which is always a canonical identity id.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Protocol

import anyio

from coreason_homepage.exceptions import StorageError
from coreason_homepage.models import BookmarkNode
from coreason_homepage.utils.logger import logger

DOCUMENT_TYPE = "bookmarks"


class BookmarkStore(Protocol):
    """Document store contract (upsert / query by partition key)."""

    async def initialize(self) -> None:
        """Creates the database and container if they do not exist."""
        ...

    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        """Inserts or replaces `document` and returns the stored version."""
        ...

    async def query(self, partition_key: str, document_type: str) -> list[dict[str, Any]]:
        """Returns every document of `document_type` in the partition."""
        ...


class MemoryBookmarkStore:
    """
    In-memory implementation of BookmarkStore.
    Not suitable for multi-replica deployments; used for local development and tests.
    """

    def __init__(self) -> None:
        self._documents: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = anyio.Lock()
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            stored = dict(document)
            self._documents[(stored["userId"], stored["id"])] = stored
            return dict(stored)

    async def query(self, partition_key: str, document_type: str) -> list[dict[str, Any]]:
        async with self._lock:
            return [
                dict(doc)
                for (user_id, _), doc in self._documents.items()
                if user_id == partition_key and doc.get("type") == document_type
            ]


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_plain(bookmarks: Sequence[BookmarkNode]) -> list[dict[str, Any]]:
    return [node.model_dump(exclude_none=True) for node in bookmarks]


class BookmarkService:
    """
    Reads and writes a user's bookmark document.

    Attributes:
        store (BookmarkStore): The storage backend.
        database_name (str): Reported by the health and init endpoints.
        container_name (str): Reported by the health and init endpoints.
    """

    def __init__(self, store: BookmarkStore, database_name: str, container_name: str) -> None:
        self.store = store
        self.database_name = database_name
        self.container_name = container_name

    @staticmethod
    def document_id(user_id: str) -> str:
        return f"bookmarks_{user_id}"

    async def get_bookmarks(self, user_id: str) -> list[dict[str, Any]]:
        """
        Returns the user's bookmark tree, or an empty list when nothing is stored.

        Raises:
            StorageError: If the store fails.
        """
        try:
            documents = await self.store.query(user_id, DOCUMENT_TYPE)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query bookmarks: {e}") from e
        if not documents:
            return []
        bookmarks = documents[0].get("bookmarks")
        return bookmarks if isinstance(bookmarks, list) else []

    async def save_bookmarks(self, user_id: str, bookmarks: Sequence[BookmarkNode]) -> dict[str, Any]:
        """
        Replaces the user's bookmark tree. Idempotent, so clients may retry freely.

        Returns:
            dict[str, Any]: The stored document.

        Raises:
            StorageError: If the store fails.
        """
        document = {
            "id": self.document_id(user_id),
            "userId": user_id,
            "type": DOCUMENT_TYPE,
            "bookmarks": to_plain(bookmarks),
            "updatedAt": iso_timestamp(),
        }
        try:
            stored = await self.store.upsert(document)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save bookmarks: {e}") from e
        logger.debug(f"Stored {len(document['bookmarks'])} top-level bookmarks")
        return stored

    async def initialize(self, user_id: str, seed: Sequence[BookmarkNode] | None = None) -> bool:
        """
        Prepares the store and optionally seeds the caller's bookmarks.

        Returns:
            bool: Whether bookmarks were seeded.
        """
        try:
            await self.store.initialize()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to initialize storage: {e}") from e
        if seed is None:
            return False
        await self.save_bookmarks(user_id, seed)
        return True
