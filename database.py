"""
MongoDB access: the connection owned by the app and a document store
adapter over one pymongo collection.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.concurrency import run_in_threadpool

from errors import DuplicateEntryError, PersistenceError

logger = logging.getLogger(__name__)

Sort = Sequence[Tuple[str, int]]


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc


def _object_id(id: str) -> ObjectId:
    try:
        return ObjectId(id)
    except (InvalidId, TypeError) as e:
        raise PersistenceError(f"Malformed document id: {id!r}") from e


def _translate(filter: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    filt = dict(filter or {})
    if "id" in filt:
        filt["_id"] = _object_id(filt.pop("id"))
    return filt


def _translate_sort(sort: Optional[Sort]) -> Optional[List[Tuple[str, int]]]:
    if not sort:
        return None
    return [("_id" if field == "id" else field, direction) for field, direction in sort]


class MongoConnection:
    """
    Lazily established client shared by every store in the process.

    connect() and disconnect() are idempotent. Only the initial connect is
    retried, with exponential backoff; queries are never retried.
    """

    def __init__(
        self,
        uri: str,
        database_name: str,
        service_name: str = "garment-catalog",
        max_retries: int = 5,
        retry_delay: float = 2.0,
        client_factory: Callable[..., Any] = MongoClient,
    ):
        self.uri = uri
        self.database_name = database_name
        self.service_name = service_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client_factory = client_factory
        self._client = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        async with self._lock:
            if self._client is not None:
                logger.debug("[%s] MongoDB already connected", self.service_name)
                return
            delay = self.retry_delay
            for attempt in range(1, self.max_retries + 1):
                client = self._client_factory(self.uri, serverSelectionTimeoutMS=5000, tz_aware=True)
                try:
                    await run_in_threadpool(client.admin.command, "ping")
                except PyMongoError as e:
                    client.close()
                    if attempt == self.max_retries:
                        logger.error("[%s] MongoDB connection failed after %d attempts", self.service_name, attempt)
                        raise PersistenceError(f"Could not connect to MongoDB: {e}") from e
                    logger.warning(
                        "[%s] MongoDB connection failed (%s); retrying in %.1fs",
                        self.service_name, e, delay,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                self._client = client
                logger.info("[%s] MongoDB connected", self.service_name)
                return

    async def disconnect(self) -> None:
        async with self._lock:
            if self._client is None:
                logger.warning("[%s] No active MongoDB connection", self.service_name)
                return
            self._client.close()
            self._client = None
            logger.info("[%s] MongoDB disconnected", self.service_name)

    @property
    def db(self):
        if self._client is None:
            raise PersistenceError("MongoDB is not connected")
        return self._client[self.database_name]

    def collection(self, name: str) -> Collection:
        return self.db[name]

    async def ensure_indexes(self) -> None:
        users = self.collection("users")
        garments = self.collection("garments")
        await run_in_threadpool(users.create_index, [("email", ASCENDING)], unique=True)
        await run_in_threadpool(users.create_index, [("refresh_token", ASCENDING)])
        await run_in_threadpool(garments.create_index, [("categories", ASCENDING), ("availability", ASCENDING)])
        await run_in_threadpool(garments.create_index, [("price", ASCENDING)])


class MongoStore:
    """Document store over a single collection; ids are hex strings outward."""

    def __init__(self, collection: Collection):
        self.collection = collection

    async def _run(self, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, **kwargs)
        except DuplicateKeyError as e:
            raise DuplicateEntryError(str(e)) from e
        except PyMongoError as e:
            logger.exception("MongoDB operation on %s failed", self.collection.name)
            raise PersistenceError(str(e)) from e

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc = dict(doc)
        res = await self._run(self.collection.insert_one, doc)
        doc["_id"] = res.inserted_id
        return serialize_doc(doc)

    async def get_by_id(self, id: str) -> Optional[Dict[str, Any]]:
        doc = await self._run(self.collection.find_one, {"_id": _object_id(id)})
        return serialize_doc(doc)

    async def find_one(self, filter: Dict[str, Any], sort: Optional[Sort] = None) -> Optional[Dict[str, Any]]:
        doc = await self._run(self.collection.find_one, _translate(filter), sort=_translate_sort(sort))
        return serialize_doc(doc)

    async def find_many(
        self,
        filter: Dict[str, Any],
        skip: int = 0,
        limit: int = 0,
        sort: Optional[Sort] = None,
    ) -> List[Dict[str, Any]]:
        def query():
            cursor = self.collection.find(_translate(filter))
            order = _translate_sort(sort)
            if order:
                cursor = cursor.sort(order)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return [serialize_doc(d) for d in cursor]

        return await self._run(query)

    async def count(self, filter: Dict[str, Any]) -> int:
        return await self._run(self.collection.count_documents, _translate(filter))

    async def update_by_id(self, id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        doc = await self._run(
            self.collection.find_one_and_update,
            {"_id": _object_id(id)},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return serialize_doc(doc)

    async def delete_by_id(self, id: str) -> Optional[Dict[str, Any]]:
        doc = await self._run(self.collection.find_one_and_delete, {"_id": _object_id(id)})
        return serialize_doc(doc)

    async def delete_many(self, filter: Dict[str, Any]) -> int:
        res = await self._run(self.collection.delete_many, _translate(filter))
        return res.deleted_count
