"""embedkv - An embedded, async key-value data-structure engine."""

from embedkv.caching import CacheManager, SingleFlight, StoreCache
from embedkv.client import KeyValueClient
from embedkv.config import Config
from embedkv.exceptions import (
    ConfigError,
    ConflictError,
    EmbedKVError,
    GroupAlreadyExistsError,
    GroupNotFoundError,
    InvalidStateError,
    InvalidStreamIdError,
    NotFoundError,
    WrongTypeError,
)
from embedkv.observability import (
    LogLevel,
    OperationContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from embedkv.pubsub import Message, PubSub, Subscription
from embedkv.reaper import ExpiryReaper
from embedkv.repository import KeyValueRepository
from embedkv.store import EntryStore, ValueKind
from embedkv.streams import StreamId, StreamRecord
from embedkv.structures import EMPTY, GeoPoint, GeoResult
from embedkv.transactions import Pipeline, Transaction

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "EntryStore",
    "KeyValueClient",
    "ValueKind",
    "EMPTY",
    # Batches
    "Pipeline",
    "Transaction",
    # Structures
    "GeoPoint",
    "GeoResult",
    "StreamId",
    "StreamRecord",
    # Messaging
    "Message",
    "PubSub",
    "Subscription",
    # Caching
    "CacheManager",
    "SingleFlight",
    "StoreCache",
    # Persistence
    "KeyValueRepository",
    "ExpiryReaper",
    # Errors
    "ConfigError",
    "ConflictError",
    "EmbedKVError",
    "GroupAlreadyExistsError",
    "GroupNotFoundError",
    "InvalidStateError",
    "InvalidStreamIdError",
    "NotFoundError",
    "WrongTypeError",
    # Observability
    "LogLevel",
    "OperationContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
