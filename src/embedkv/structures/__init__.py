"""Typed views over the entry store."""

from embedkv.structures.base import EMPTY, Executor, Operations, Value
from embedkv.structures.geo import GeoOperations, GeoPoint, GeoResult
from embedkv.structures.hashes import HashOperations
from embedkv.structures.hyperloglog import HyperLogLogOperations
from embedkv.structures.keys import KeyOperations
from embedkv.structures.lists import ListOperations
from embedkv.structures.sets import SetOperations
from embedkv.structures.sorted_sets import SortedSetOperations
from embedkv.structures.strings import ValueOperations

__all__ = [
    "EMPTY",
    "Executor",
    "GeoOperations",
    "GeoPoint",
    "GeoResult",
    "HashOperations",
    "HyperLogLogOperations",
    "KeyOperations",
    "ListOperations",
    "Operations",
    "SetOperations",
    "SortedSetOperations",
    "Value",
    "ValueOperations",
]
