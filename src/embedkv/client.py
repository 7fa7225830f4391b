"""Client facade composing the engine's components around one store."""

from typing import Any, TypeVar

from pydantic import BaseModel

from embedkv.caching import CacheManager, StoreCache
from embedkv.config import Config
from embedkv.observability import OperationContext, configure_logging, get_logger
from embedkv.operations import OperationSet
from embedkv.plugins import create_store
from embedkv.pubsub import PubSub, Subscription
from embedkv.reaper import ExpiryReaper
from embedkv.repository import KeyValueRepository
from embedkv.store import EntryStore
from embedkv.structures import Value
from embedkv.transactions import Pipeline, Transaction
from embedkv.views import StoreList, StoreMap, StoreSet, StoreSortedSet

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_logger(__name__)


class KeyValueClient(OperationSet):
    """Entry point to the store: typed operations, transactions, pub/sub and caches.

    Collaborators are passed in explicitly; anything omitted is built from
    ``config``.

    Example:
        async with KeyValueClient() as client:
            await client.values.set("name", "Arbi", ttl=2)
            await client.lists.push_right("names", "Arbi", "Dwi", "Wijaya")
            async with client.multi() as tx:
                await tx.values.set("test1", "Arbi")
                await tx.values.set("test2", "Kalista")
    """

    def __init__(
        self,
        store: EntryStore | None = None,
        config: Config | None = None,
        pubsub: PubSub | None = None,
    ) -> None:
        """Initialize client.

        Args:
            store: Backing store, a fresh in-memory store by default
            config: Configuration, defaults apply when omitted
            pubsub: Broker for publish/subscribe
        """
        self.config = config or Config()
        self.store = store if store is not None else EntryStore()
        super().__init__(self.store)
        self.pubsub = pubsub or PubSub(max_pending=self.config.pubsub.max_pending)
        self.caches = CacheManager(self.store, self.config.cache)
        self.reaper = ExpiryReaper(
            self.store,
            interval=self.config.reaper.interval_seconds,
            sample_size=self.config.reaper.sample_size,
        )

    @classmethod
    def from_config(cls, config: Config) -> "KeyValueClient":
        """Build a client, its logging and its store backend from configuration."""
        configure_logging(config.logging.level, config.logging.format)
        store = create_store(config.store.backend, **config.store.options)
        return cls(store=store, config=config)

    @property
    def name(self) -> str:
        return self.config.client_name

    async def start(self) -> None:
        """Start background work (the expiry reaper)."""
        if self.config.reaper.enabled:
            self.reaper.start()
        with OperationContext(client_name=self.name):
            logger.info(
                "Client started",
                context={"reaper": self.config.reaper.enabled, "backend": type(self.store).__name__},
            )

    async def close(self) -> None:
        """Stop background work. Data stays in the store."""
        await self.reaper.stop()
        with OperationContext(client_name=self.name):
            logger.info("Client closed")

    async def __aenter__(self) -> "KeyValueClient":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Batches

    def multi(self) -> Transaction:
        """New transaction; use ``async with`` or ``begin()``/``commit()``."""
        return Transaction(self.store)

    def pipeline(self, raise_on_error: bool = True) -> Pipeline:
        return Pipeline(self.store, raise_on_error=raise_on_error)

    # Pub/sub

    async def publish(self, channel: str, message: Value) -> int:
        return await self.pubsub.publish(channel, message)

    def subscribe(self, *channels: str) -> Subscription:
        return self.pubsub.subscribe(*channels)

    def psubscribe(self, *patterns: str) -> Subscription:
        return self.pubsub.psubscribe(*patterns)

    # Caches, repositories and views

    def cache(self, name: str) -> StoreCache[Any]:
        return self.caches.get_cache(name)

    def repository(
        self,
        model: type[ModelT],
        keyspace: str | None = None,
        id_field: str = "id",
        ttl_field: str | None = "ttl",
    ) -> KeyValueRepository[ModelT]:
        return KeyValueRepository(self, model, keyspace, id_field, ttl_field)

    def list(self, key: str) -> StoreList:
        return StoreList(self, key)

    def set(self, key: str) -> StoreSet:
        return StoreSet(self, key)

    def sorted_set(self, key: str) -> StoreSortedSet:
        return StoreSortedSet(self, key)

    def map(self, key: str) -> StoreMap:
        return StoreMap(self, key)

    async def flush(self) -> None:
        """Remove every key."""
        await self.store.flush()
