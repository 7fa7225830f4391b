"""Geospatial index operations.

Positions are stored in a sorted set whose scores are 52-bit interleaved
geohashes, so a geo key can also be read with the sorted set operations.
"""

import math
from dataclasses import dataclass
from typing import Literal

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import Operations, Value, check_key, check_number, check_value
from embedkv.structures.sorted_sets import ScoredMembers

LONGITUDE_MIN = -180.0
LONGITUDE_MAX = 180.0
LATITUDE_MIN = -85.05112878
LATITUDE_MAX = 85.05112878
GEO_STEP = 26
EARTH_RADIUS_METERS = 6372797.560856

Unit = Literal["m", "km", "mi", "ft"]

UNITS: dict[str, float] = {
    "m": 1.0,
    "km": 1000.0,
    "mi": 1609.34,
    "ft": 0.3048,
}


@dataclass(frozen=True)
class GeoPoint:
    """A longitude/latitude pair."""

    longitude: float
    latitude: float


@dataclass(frozen=True)
class GeoResult:
    """A member found by a radius search."""

    member: Value
    distance: float
    point: GeoPoint


def _interleave(x: int, y: int) -> int:
    bits = 0
    for i in range(GEO_STEP):
        bits |= ((x >> i) & 1) << (2 * i)
        bits |= ((y >> i) & 1) << (2 * i + 1)
    return bits


def _deinterleave(bits: int) -> tuple[int, int]:
    x = y = 0
    for i in range(GEO_STEP):
        x |= ((bits >> (2 * i)) & 1) << i
        y |= ((bits >> (2 * i + 1)) & 1) << i
    return x, y


def encode(longitude: float, latitude: float) -> int:
    """Encode a position as a 52-bit geohash score."""
    scale = 1 << GEO_STEP
    lat_offset = (latitude - LATITUDE_MIN) / (LATITUDE_MAX - LATITUDE_MIN)
    lon_offset = (longitude - LONGITUDE_MIN) / (LONGITUDE_MAX - LONGITUDE_MIN)
    lat_bits = min(int(lat_offset * scale), scale - 1)
    lon_bits = min(int(lon_offset * scale), scale - 1)
    return _interleave(lat_bits, lon_bits)


def decode(bits: int) -> GeoPoint:
    """Center of the geohash cell for a score."""
    scale = 1 << GEO_STEP
    lat_bits, lon_bits = _deinterleave(bits)
    lat_span = LATITUDE_MAX - LATITUDE_MIN
    lon_span = LONGITUDE_MAX - LONGITUDE_MIN
    lat_low = LATITUDE_MIN + lat_span * lat_bits / scale
    lat_high = LATITUDE_MIN + lat_span * (lat_bits + 1) / scale
    lon_low = LONGITUDE_MIN + lon_span * lon_bits / scale
    lon_high = LONGITUDE_MIN + lon_span * (lon_bits + 1) / scale
    longitude = min(max((lon_low + lon_high) / 2, LONGITUDE_MIN), LONGITUDE_MAX)
    latitude = min(max((lat_low + lat_high) / 2, LATITUDE_MIN), LATITUDE_MAX)
    return GeoPoint(longitude=longitude, latitude=latitude)


def haversine(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    u = math.sin((lat2 - lat1) / 2)
    v = math.sin(math.radians(b.longitude - a.longitude) / 2)
    return 2.0 * EARTH_RADIUS_METERS * math.asin(
        math.sqrt(u * u + math.cos(lat1) * math.cos(lat2) * v * v)
    )


def _check_position(longitude: float, latitude: float) -> None:
    check_number(longitude, "longitude")
    check_number(latitude, "latitude")
    if not LONGITUDE_MIN <= longitude <= LONGITUDE_MAX:
        raise ValueError(f"Invalid longitude {longitude}")
    if not LATITUDE_MIN <= latitude <= LATITUDE_MAX:
        raise ValueError(f"Invalid latitude {latitude}")


def _unit_factor(unit: str) -> float:
    try:
        return UNITS[unit]
    except KeyError:
        raise ValueError(f"Unsupported unit '{unit}', use one of {sorted(UNITS)}") from None


class GeoOperations(Operations):
    """Named positions searchable by distance.

    Example:
        geo = GeoOperations(store)
        await geo.add("sellers", 106.822695, -6.177456, "Toko A")
        await geo.add("sellers", 106.821016, -6.174598, "Toko B")
        km = await geo.distance("sellers", "Toko A", "Toko B", unit="km")
    """

    async def add(self, key: str, longitude: float, latitude: float, member: Value) -> bool:
        """Add or move a member. Returns True if the member is new."""
        check_key(key)
        check_value(member)
        _check_position(longitude, latitude)
        return await self._run([key], _add, key, member, encode(longitude, latitude))

    async def position(self, key: str, member: Value) -> GeoPoint | None:
        check_key(key)
        check_value(member)
        return await self._run([key], _position, key, member)

    async def distance(
        self, key: str, first: Value, second: Value, unit: Unit = "m"
    ) -> float | None:
        """Distance between two members, None if either is missing."""
        check_key(key)
        check_value(first)
        check_value(second)
        factor = _unit_factor(unit)
        return await self._run([key], _distance, key, first, second, factor)

    async def search(
        self,
        key: str,
        longitude: float,
        latitude: float,
        radius: float,
        unit: Unit = "m",
        sort: Literal["asc", "desc"] | None = None,
        count: int | None = None,
    ) -> list[GeoResult]:
        """Members within ``radius`` of a position.

        Without ``sort`` results come back in index order.
        """
        check_key(key)
        _check_position(longitude, latitude)
        check_number(radius, "radius")
        factor = _unit_factor(unit)
        center = GeoPoint(longitude=longitude, latitude=latitude)
        return await self._run([key], _search, key, center, radius, factor, sort, count)

    async def search_by_member(
        self,
        key: str,
        member: Value,
        radius: float,
        unit: Unit = "m",
        sort: Literal["asc", "desc"] | None = None,
        count: int | None = None,
    ) -> list[GeoResult]:
        """Members within ``radius`` of another member, empty if it is missing."""
        check_key(key)
        check_value(member)
        check_number(radius, "radius")
        factor = _unit_factor(unit)
        return await self._run(
            [key], _search_by_member, key, member, radius, factor, sort, count
        )

    async def remove(self, key: str, *members: Value) -> int:
        check_key(key)
        for member in members:
            check_value(member)
        return await self._run([key], _remove, key, members)


def _add(store: EntryStore, key: str, member: Value, score: int) -> bool:
    entry = store.lookup_or_create(key, ValueKind.ZSET, ScoredMembers)
    added = entry.value.add(member, float(score))
    store.touch(entry)
    return added


def _point(store: EntryStore, key: str, member: Value) -> GeoPoint | None:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None or member not in entry.value:
        return None
    return decode(int(entry.value.scores[member]))


def _position(store: EntryStore, key: str, member: Value) -> GeoPoint | None:
    return _point(store, key, member)


def _distance(
    store: EntryStore, key: str, first: Value, second: Value, factor: float
) -> float | None:
    a = _point(store, key, first)
    b = _point(store, key, second)
    if a is None or b is None:
        return None
    return round(haversine(a, b) / factor, 4)


def _search(
    store: EntryStore,
    key: str,
    center: GeoPoint,
    radius: float,
    factor: float,
    sort: str | None,
    count: int | None,
) -> list[GeoResult]:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None:
        return []
    limit = radius * factor
    results = []
    for member, score in entry.value.items():
        point = decode(int(score))
        meters = haversine(center, point)
        if meters <= limit:
            results.append(
                GeoResult(member=member, distance=round(meters / factor, 4), point=point)
            )
    if sort is not None:
        results.sort(key=lambda r: r.distance, reverse=sort == "desc")
    if count is not None:
        results = results[:count]
    return results


def _search_by_member(
    store: EntryStore,
    key: str,
    member: Value,
    radius: float,
    factor: float,
    sort: str | None,
    count: int | None,
) -> list[GeoResult]:
    center = _point(store, key, member)
    if center is None:
        return []
    return _search(store, key, center, radius, factor, sort, count)


def _remove(store: EntryStore, key: str, members: tuple[Value, ...]) -> int:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None:
        return 0
    removed = sum(1 for member in members if entry.value.remove(member))
    if removed:
        store.touch(entry)
        store.remove_if_empty(key, entry)
    return removed
