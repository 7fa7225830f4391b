"""Keyspace repository persisting pydantic models as hashes.

Each model is stored as the hash ``<keyspace>:<id>`` and its id is indexed in
the set ``<keyspace>``. A model field named by ``ttl_field`` (seconds) is not
stored; when set it becomes the TTL of the hash.
"""

import json
import types
import uuid
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel

from embedkv.observability import get_logger

if TYPE_CHECKING:
    from embedkv.client import KeyValueClient

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_logger(__name__)


def _accepts_str(annotation: Any) -> bool:
    if annotation is str:
        return True
    if get_origin(annotation) in (Union, types.UnionType):
        return str in get_args(annotation)
    return False


class KeyValueRepository(Generic[ModelT]):
    """CRUD access to models of one type.

    Example:
        class Product(BaseModel):
            id: str | None = None
            name: str
            price: int
            ttl: int | None = None

        products = KeyValueRepository(client, Product, keyspace="products")
        await products.save(Product(id="1", name="Mie Ayam Jakarta", price=20_000))
        product = await products.find_by_id("1")
    """

    def __init__(
        self,
        client: "KeyValueClient",
        model: type[ModelT],
        keyspace: str | None = None,
        id_field: str = "id",
        ttl_field: str | None = "ttl",
    ) -> None:
        """Initialize repository.

        Args:
            client: Client to store models through
            model: Pydantic model class
            keyspace: Key prefix, defaults to the lowercased model name
            id_field: Name of the id field; generated when None on save
            ttl_field: Name of the TTL field, None to disable TTLs
        """
        if id_field not in model.model_fields:
            raise ValueError(f"{model.__name__} has no field '{id_field}'")
        self.client = client
        self.model = model
        self.keyspace = keyspace or model.__name__.lower()
        self.id_field = id_field
        self.ttl_field = ttl_field if ttl_field in model.model_fields else None

    def key_for(self, id: Any) -> str:
        return f"{self.keyspace}:{id}"

    def _to_fields(self, entity: ModelT) -> tuple[dict[str, str], float | None]:
        data = entity.model_dump(mode="json", exclude_none=True)
        ttl = data.pop(self.ttl_field, None) if self.ttl_field else None
        fields = {
            name: value if isinstance(value, str) else json.dumps(value)
            for name, value in data.items()
        }
        return fields, ttl

    def _from_fields(self, fields: dict[Any, Any]) -> ModelT:
        data: dict[str, Any] = {}
        for name, raw in fields.items():
            name = name.decode() if isinstance(name, bytes) else name
            raw = raw.decode() if isinstance(raw, bytes) else raw
            info = self.model.model_fields.get(name)
            if info is None:
                continue
            if _accepts_str(info.annotation):
                data[name] = raw
                continue
            try:
                data[name] = json.loads(raw)
            except json.JSONDecodeError:
                data[name] = raw
        return self.model.model_validate(data)

    async def save(self, entity: ModelT) -> ModelT:
        """Insert or replace a model. Returns it, with a generated id if needed."""
        if getattr(entity, self.id_field) is None:
            entity = entity.model_copy(update={self.id_field: uuid.uuid4().hex})
        id = str(getattr(entity, self.id_field))
        fields, ttl = self._to_fields(entity)
        key = self.key_for(id)

        async with self.client.multi() as tx:
            await tx.keys.delete(key)
            await tx.hashes.put_all(key, fields)
            await tx.sets.add(self.keyspace, id)
            if ttl:
                await tx.keys.expire(key, ttl)

        logger.debug("Entity saved", context={"keyspace": self.keyspace, "id": id})
        return entity

    async def find_by_id(self, id: Any) -> ModelT | None:
        """Model with ``id``, None if absent or expired."""
        fields = await self.client.hashes.entries(self.key_for(id))
        if not fields:
            await self.client.sets.remove(self.keyspace, str(id))
            return None
        return self._from_fields(fields)

    async def find_all(self) -> list[ModelT]:
        ids = sorted(await self.client.sets.members(self.keyspace))
        result = []
        for id in ids:
            entity = await self.find_by_id(id)
            if entity is not None:
                result.append(entity)
        return result

    async def exists(self, id: Any) -> bool:
        return await self.client.keys.exists(self.key_for(id))

    async def delete(self, id: Any) -> bool:
        """Remove a model. Returns True if it was stored."""
        async with self.client.multi() as tx:
            await tx.keys.delete(self.key_for(id))
            await tx.sets.remove(self.keyspace, str(id))
        return bool(tx.results and tx.results[0])

    async def count(self) -> int:
        return len(await self.find_all())

    async def delete_all(self) -> int:
        ids = await self.client.sets.members(self.keyspace)
        keys = [self.key_for(id) for id in ids]
        if not keys:
            return 0
        removed = await self.client.keys.delete(*keys)
        await self.client.keys.delete(self.keyspace)
        return removed
