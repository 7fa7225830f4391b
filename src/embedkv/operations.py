"""The full set of adapters bound to one executor."""

from embedkv.streams import StreamOperations
from embedkv.structures import (
    Executor,
    GeoOperations,
    HashOperations,
    HyperLogLogOperations,
    KeyOperations,
    ListOperations,
    SetOperations,
    SortedSetOperations,
    ValueOperations,
)


class OperationSet:
    """Every adapter, bound to the same executor.

    The client binds them to the store (run now); transactions and pipelines
    bind them to a queue (run later).
    """

    def __init__(self, executor: Executor) -> None:
        self.keys = KeyOperations(executor)
        self.values = ValueOperations(executor)
        self.lists = ListOperations(executor)
        self.sets = SetOperations(executor)
        self.zsets = SortedSetOperations(executor)
        self.hashes = HashOperations(executor)
        self.geo = GeoOperations(executor)
        self.hyperloglog = HyperLogLogOperations(executor)
        self.streams = StreamOperations(executor)
