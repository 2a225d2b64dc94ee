"""
Generic CRUD / pagination / search repository and the domain repositories
built on it.

CrudRepository is parametrised over a StoredEntity schema and talks to any
DocumentStore. Domain repositories hold one rather than subclassing it.
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

from pydantic import ValidationError

from errors import SchemaValidationError
from schemas import Garment, PaginationResult, StoredEntity, User

logger = logging.getLogger(__name__)

Sort = Sequence[Tuple[str, int]]
EntityT = TypeVar("EntityT", bound=StoredEntity)

# Managed by the repository, never taken from callers
_SERVER_FIELDS = {"id", "created_at", "updated_at"}


class DocumentStore(Protocol):
    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]: ...

    async def get_by_id(self, id: str) -> Optional[Dict[str, Any]]: ...

    async def find_one(self, filter: Dict[str, Any], sort: Optional[Sort] = None) -> Optional[Dict[str, Any]]: ...

    async def find_many(
        self, filter: Dict[str, Any], skip: int = 0, limit: int = 0, sort: Optional[Sort] = None
    ) -> List[Dict[str, Any]]: ...

    async def count(self, filter: Dict[str, Any]) -> int: ...

    async def update_by_id(self, id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    async def delete_by_id(self, id: str) -> Optional[Dict[str, Any]]: ...

    async def delete_many(self, filter: Dict[str, Any]) -> int: ...


def utcnow() -> datetime:
    # BSON dates hold milliseconds; keep what we return equal to what is read back
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


class CrudRepository(Generic[EntityT]):
    def __init__(self, store: DocumentStore, schema: Type[EntityT]):
        self.store = store
        self.schema = schema

    def _validate(self, data: Dict[str, Any]) -> EntityT:
        try:
            return self.schema.model_validate(data)
        except ValidationError as e:
            raise SchemaValidationError(_describe(e), e.errors(include_url=False)) from e

    def _entity(self, doc: Optional[Dict[str, Any]]) -> Optional[EntityT]:
        if doc is None:
            return None
        return self.schema.model_validate(doc)

    def _storable(self, entity: EntityT, fields=None) -> Dict[str, Any]:
        return entity.model_dump(include=fields, exclude={"id"})

    async def create(self, data: Dict[str, Any]) -> EntityT:
        payload = {k: v for k, v in data.items() if k not in _SERVER_FIELDS}
        now = utcnow()
        payload["created_at"] = now
        payload["updated_at"] = now
        entity = self._validate(payload)
        doc = await self.store.insert(self._storable(entity))
        return self._entity(doc)

    async def find_by_id(self, id: str) -> Optional[EntityT]:
        return self._entity(await self.store.get_by_id(id))

    async def find_one(self, filter: Dict[str, Any], sort: Optional[Sort] = None) -> Optional[EntityT]:
        return self._entity(await self.store.find_one(filter, sort=sort))

    async def find_all(self, filter: Optional[Dict[str, Any]] = None, sort: Optional[Sort] = None) -> List[EntityT]:
        docs = await self.store.find_many(filter or {}, sort=sort)
        return [self._entity(d) for d in docs]

    async def update_by_id(self, id: str, partial: Dict[str, Any]) -> Optional[EntityT]:
        """
        Merge `partial` into the stored document and write the changed fields.

        The merged document is validated against the schema first; an invalid
        merge raises SchemaValidationError and nothing is written.
        """
        unknown = set(partial) - set(self.schema.model_fields)
        if unknown:
            raise SchemaValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        current = await self.store.get_by_id(id)
        if current is None:
            return None

        changes = {k: v for k, v in partial.items() if k not in _SERVER_FIELDS}
        merged = {**current, **changes, "updated_at": utcnow()}
        entity = self._validate(merged)

        doc = await self.store.update_by_id(id, self._storable(entity, set(changes) | {"updated_at"}))
        return self._entity(doc)

    async def delete_by_id(self, id: str) -> Optional[EntityT]:
        return self._entity(await self.store.delete_by_id(id))

    async def delete_many(self, filter: Dict[str, Any]) -> int:
        return await self.store.delete_many(filter)

    async def find_with_pagination(
        self,
        filter: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 10,
        sort: Optional[Sort] = None,
    ) -> PaginationResult[EntityT]:
        filter = filter or {}
        skip = (page - 1) * limit
        # Slice and total are independent reads; they may observe different instants
        docs, total_docs = await asyncio.gather(
            self.store.find_many(filter, skip=skip, limit=limit, sort=sort),
            self.store.count(filter),
        )
        return PaginationResult.build([self._entity(d) for d in docs], total_docs, page, limit)

    async def search_with_pagination(
        self,
        field: str,
        value: str,
        page: int = 1,
        limit: int = 10,
        sort: Optional[Sort] = None,
    ) -> PaginationResult[EntityT]:
        filter = {field: {"$regex": re.escape(value), "$options": "i"}}
        return await self.find_with_pagination(filter, page, limit, sort=sort)


class GarmentRepository:
    def __init__(self, store: DocumentStore):
        self.crud: CrudRepository[Garment] = CrudRepository(store, Garment)

    async def create(self, data: Dict[str, Any]) -> Garment:
        return await self.crud.create(data)

    async def find_by_id(self, id: str) -> Optional[Garment]:
        return await self.crud.find_by_id(id)

    async def update_by_id(self, id: str, partial: Dict[str, Any]) -> Optional[Garment]:
        return await self.crud.update_by_id(id, partial)

    async def delete_by_id(self, id: str) -> Optional[Garment]:
        return await self.crud.delete_by_id(id)

    async def find_with_pagination(self, filter=None, page: int = 1, limit: int = 10, sort=None):
        return await self.crud.find_with_pagination(filter, page, limit, sort=sort)

    async def search_by_name(self, name: str, page: int = 1, limit: int = 10, sort=None):
        return await self.crud.search_with_pagination("name", name, page, limit, sort=sort)


class UserRepository:
    def __init__(self, store: DocumentStore):
        self.crud: CrudRepository[User] = CrudRepository(store, User)

    async def create(self, data: Dict[str, Any]) -> User:
        return await self.crud.create(data)

    async def find_by_id(self, id: str) -> Optional[User]:
        return await self.crud.find_by_id(id)

    async def find_by_email(self, email: str) -> Optional[User]:
        return await self.crud.find_one({"email": email})

    async def exists_by_email(self, email: str) -> bool:
        return await self.crud.store.count({"email": email}) > 0

    async def find_by_refresh_token(self, refresh_token: str) -> Optional[User]:
        return await self.crud.find_one({"refresh_token": refresh_token})

    async def store_refresh_token(self, user_id: str, refresh_token: str, touch_login: bool = False) -> Optional[User]:
        changes: Dict[str, Any] = {"refresh_token": refresh_token}
        if touch_login:
            changes["last_login"] = utcnow()
        return await self.crud.update_by_id(user_id, changes)

    async def clear_refresh_token(self, user_id: str) -> Optional[User]:
        return await self.crud.update_by_id(user_id, {"refresh_token": None})
