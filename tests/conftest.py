"""
Shared test fixtures.

Provides an in-memory stand-in for the parts of the Motor API the engine
touches (find/sort/skip/limit/to_list, count_documents, index_information,
create_index, command). It evaluates the operators the query layer emits
and reproduces the server errors that matter here: ``$near`` or ``$text``
without the matching index, and ``$near`` inside ``count_documents``.
"""

from __future__ import annotations

import copy
import math
import re
from datetime import datetime, timezone
from typing import Any

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from bartersearch.config.settings import Settings
from bartersearch.core.engine import SearchEngine
from bartersearch.storage.mongo import GEO_FIELD, TEXT_INDEX_NAME, MarketplaceStore

MISSING = object()
EARTH_RADIUS_METERS = 6378100.0

ALICE_ID = ObjectId("65a000000000000000000001")
BOB_ID = ObjectId("65a000000000000000000002")

MADRID = {"lat": 40.4168, "lng": -3.7038}


# ---------------------------------------------------------------------------
# Query evaluation
# ---------------------------------------------------------------------------


def get_path(doc: Any, path: str) -> Any:
    node = doc
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return MISSING
        node = node[part]
    return node


def contains_operator(query: Any, operator: str) -> bool:
    if isinstance(query, dict):
        return any(k == operator or contains_operator(v, operator) for k, v in query.items())
    if isinstance(query, list):
        return any(contains_operator(v, operator) for v in query)
    return False


def sphere_distance_m(point: list[float], center: list[float]) -> float:
    lng1, lat1 = map(math.radians, point)
    lng2, lat2 = map(math.radians, center)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))


def _compare(value: Any, operand: Any, op) -> bool:
    if value is MISSING or value is None:
        return False
    try:
        return op(value, operand)
    except TypeError:
        return False


def match_condition(value: Any, cond: Any) -> bool:
    if not (isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond)):
        if isinstance(value, list) and not isinstance(cond, list):
            return cond in value
        return value is not MISSING and value == cond

    for op, operand in cond.items():
        if op == "$in":
            values = value if isinstance(value, list) else [value]
            if not any(v in operand for v in values if v is not MISSING):
                return False
        elif op == "$gt":
            if not _compare(value, operand, lambda a, b: a > b):
                return False
        elif op == "$gte":
            if not _compare(value, operand, lambda a, b: a >= b):
                return False
        elif op == "$lt":
            if not _compare(value, operand, lambda a, b: a < b):
                return False
        elif op == "$lte":
            if not _compare(value, operand, lambda a, b: a <= b):
                return False
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(operand, value, flags):
                return False
        elif op == "$options":
            continue
        elif op == "$near":
            if not isinstance(value, list):
                return False
            center = operand["$geometry"]["coordinates"]
            if sphere_distance_m(value, center) > operand["$maxDistance"]:
                return False
        elif op == "$geoWithin":
            if not isinstance(value, list):
                return False
            center, radians = operand["$centerSphere"]
            if sphere_distance_m(value, center) > radians * EARTH_RADIUS_METERS:
                return False
        else:
            raise OperationFailure(f"unknown operator: {op}")
    return True


# ---------------------------------------------------------------------------
# Fake Motor objects
# ---------------------------------------------------------------------------


class FakeCursor:
    """Chainable cursor over an already filtered list of documents."""

    def __init__(self, docs: list[dict], projection: dict | None, scores: dict):
        self._docs = docs
        self._projection = projection
        self._scores = scores
        self._sort: list | None = None
        self._skip = 0
        self._limit = 0

    def sort(self, spec):
        self._sort = list(spec)
        return self

    def skip(self, n: int):
        if n > 2**63 - 1:
            raise OperationFailure("skip value is out of range for a 64-bit integer")
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _ordered(self) -> list[dict]:
        docs = list(self._docs)
        for field, direction in reversed(self._sort or []):
            if isinstance(direction, dict):
                docs.sort(key=lambda d: self._scores.get(id(d), 0.0), reverse=True)
                continue

            def key(doc, field=field):
                value = get_path(doc, field)
                missing = value is MISSING or value is None
                return (not missing, value if not missing else 0)

            docs.sort(key=key, reverse=direction == -1)
        return docs

    def _project(self, doc: dict) -> dict:
        projection = self._projection
        out = copy.deepcopy(doc)
        if not projection:
            return out
        meta = {k: v for k, v in projection.items() if isinstance(v, dict)}
        plain = {k: v for k, v in projection.items() if not isinstance(v, dict)}
        if plain and all(v for v in plain.values()):
            out = {k: copy.deepcopy(doc[k]) for k in plain if k in doc}
            out["_id"] = doc["_id"]
        else:
            for k in plain:
                out.pop(k, None)
        for k in meta:
            out[k] = self._scores.get(id(doc), 0.0)
        return out

    async def to_list(self, length: int | None = None) -> list[dict]:
        docs = self._ordered()[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        if length:
            docs = docs[:length]
        return [self._project(d) for d in docs]


class FakeCollection:
    def __init__(self, name: str, docs: list[dict] | None = None):
        self.name = name
        self.docs = list(docs or [])
        self.indexes: dict[str, dict] = {"_id_": {"key": [("_id", 1)], "v": 2}}
        self.find_calls: list[tuple[dict, dict | None]] = []
        self.count_calls: list[dict] = []

    def _index_kinds(self) -> dict[str, str]:
        return {f: kind for spec in self.indexes.values() for f, kind in spec["key"]}

    def _text_weights(self) -> dict[str, int]:
        for spec in self.indexes.values():
            if any(kind == "text" for _, kind in spec["key"]):
                if spec.get("weights"):
                    return dict(spec["weights"])
                return {f: 1 for f, kind in spec["key"] if kind == "text"}
        raise OperationFailure("text index required for $text query", code=27)

    def _text_score(self, doc: dict, search: str, weights: dict[str, int]) -> float:
        terms = [t.lower() for t in re.findall(r"\w+", search)]
        score = 0.0
        for field, weight in weights.items():
            value = get_path(doc, field)
            if not isinstance(value, str):
                continue
            words = [w.lower() for w in re.findall(r"\w+", value)]
            score += weight * sum(words.count(t) for t in terms)
        return score

    def _matches(self, doc: dict, query: dict, scores: dict) -> bool:
        for key, cond in query.items():
            if key == "$and":
                if not all(self._matches(doc, q, scores) for q in cond):
                    return False
            elif key == "$or":
                if not any(self._matches(doc, q, scores) for q in cond):
                    return False
            elif key == "$text":
                score = self._text_score(doc, cond["$search"], self._text_weights())
                if score <= 0:
                    return False
                scores[id(doc)] = score
            elif not match_condition(get_path(doc, key), cond):
                return False
        return True

    def _check_indexes(self, query: dict) -> None:
        if contains_operator(query, "$near") and "2dsphere" not in self._index_kinds().values():
            raise OperationFailure("error processing query: unable to find index for $geoNear query", code=291)
        if contains_operator(query, "$text"):
            self._text_weights()

    def _filter(self, query: dict | None) -> tuple[list[dict], dict]:
        query = query or {}
        self._check_indexes(query)
        scores: dict[int, float] = {}
        matched = [d for d in self.docs if self._matches(d, query, scores)]
        near = next((v["$near"] for v in query.values() if isinstance(v, dict) and "$near" in v), None)
        if near is not None:
            field = next(k for k, v in query.items() if isinstance(v, dict) and "$near" in v)
            center = near["$geometry"]["coordinates"]
            matched.sort(key=lambda d: sphere_distance_m(get_path(d, field), center))
        return matched, scores

    def find(self, filter: dict | None = None, projection: dict | None = None) -> FakeCursor:
        self.find_calls.append((copy.deepcopy(filter), projection))
        docs, scores = self._filter(filter)
        return FakeCursor(docs, projection, scores)

    async def count_documents(self, filter: dict) -> int:
        self.count_calls.append(copy.deepcopy(filter))
        if contains_operator(filter, "$near"):
            raise OperationFailure("$geoNear, $near, and $nearSphere are not allowed in this context", code=2)
        docs, _ = self._filter(filter)
        return len(docs)

    async def index_information(self) -> dict[str, dict]:
        return copy.deepcopy(self.indexes)

    async def create_index(self, keys, name: str | None = None, **kwargs) -> str:
        keys = [tuple(k) for k in keys]
        name = name or "_".join(f"{f}_{kind}" for f, kind in keys)
        self.indexes[name] = {"key": keys, "v": 2, **kwargs}
        return name


class FakeDatabase:
    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}
        self.reachable = True

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def command(self, name: str) -> dict:
        if not self.reachable:
            raise OperationFailure("server unreachable")
        return {"ok": 1}


class FakeClient:
    def __init__(self):
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase()
        return self.databases[name]

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def make_item(title: str, created: datetime, **overrides: Any) -> dict:
    item = {
        "_id": ObjectId(),
        "title": title,
        "description": "",
        "category": "other",
        "condition": "good",
        "location": "Madrid",
        "coordinates": {"type": "Point", "coordinates": [MADRID["lng"], MADRID["lat"]], "enabled": True},
        "available": True,
        "moderationStatus": "approved",
        "user": ALICE_ID,
        "imagePublicIds": ["barter/abc"],
        "createdAt": created,
    }
    item.update(overrides)
    return item


def _at(month: int) -> datetime:
    return datetime(2024, month, 1, tzinfo=timezone.utc)


def sample_items() -> list[dict]:
    return [
        make_item(
            "Mountain bike",
            _at(1),
            description="Aluminium frame bike with 21 gears",
            location="Madrid Centro",
        ),
        make_item(
            "Poetry book",
            _at(2),
            description="Collected poems, hardcover",
            category="books",
            condition="like_new",
            coordinates={"type": "Point", "coordinates": [-3.68, 40.44], "enabled": True},
            user=BOB_ID,
        ),
        make_item(
            "Road bike",
            _at(3),
            description="Carbon road bike, a light bike for racing",
            condition="fair",
            location="Toledo",
            coordinates={"type": "Point", "coordinates": [-4.0273, 39.8628], "enabled": True},
        ),
        make_item(
            "Desk lamp",
            _at(4),
            description="Lamp for reading",
            category="furniture",
            coordinates={"type": "Point", "coordinates": [-3.7040, 40.4170], "enabled": False},
            user=BOB_ID,
            moderationStatus="pending",
        ),
        make_item(
            "Old radio",
            _at(5),
            description="Vintage radio",
            category="electronics",
            available=False,
        ),
        make_item(
            "Winter coat",
            _at(6),
            description="Warm coat",
            category="clothing",
            location="Sevilla",
            coordinates={"type": "Point", "coordinates": [-5.9845, 37.3891], "enabled": True},
            user=BOB_ID,
            moderationStatus="rejected",
        ),
    ]


def sample_users() -> list[dict]:
    return [
        {
            "_id": ALICE_ID,
            "name": "Alice",
            "email": "alice@example.com",
            "password": "$2a$10$hashedsecret",
            "resetPasswordToken": "token",
            "rating": 4.5,
            "createdAt": _at(1),
        },
        {
            "_id": BOB_ID,
            "name": "Bob",
            "email": "bob@example.com",
            "password": "$2a$10$othersecret",
            "rating": 3,
            "createdAt": _at(2),
        },
    ]


def build_client(
    items: list[dict] | None = None,
    users: list[dict] | None = None,
    geo_index: bool = True,
    text_index: bool = True,
    database: str = "barter",
) -> FakeClient:
    client = FakeClient()
    db = client[database]
    db["items"].docs = sample_items() if items is None else items
    db["users"].docs = sample_users() if users is None else users
    if geo_index:
        db["items"].indexes[f"{GEO_FIELD}_2dsphere"] = {"key": [(GEO_FIELD, "2dsphere")], "v": 2}
    if text_index:
        db["items"].indexes[TEXT_INDEX_NAME] = {
            "key": [("_fts", "text"), ("_ftsx", 1)],
            "weights": {"title": 10, "description": 5},
            "v": 2,
        }
    return client


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings that never read the environment's MongoDB."""
    return Settings(
        mongodb_uri="mongodb://test:27017",
        mongodb_database="barter",
        admin_api_key="admin-secret",
        _env_file=None,
    )


@pytest.fixture
def client() -> FakeClient:
    """Fake client with sample data and both indexes."""
    return build_client()


@pytest.fixture
def make_engine(settings):
    """
    Factory for an initialized engine over a fake client.

    Capabilities are detected from the fake indexes, as at API startup.
    """

    async def _make(client: FakeClient | None = None, detect: bool = True) -> SearchEngine:
        store = MarketplaceStore(settings, client=client or build_client())
        await store.initialize()
        engine = SearchEngine(store, settings)
        if detect:
            await engine.refresh_capabilities()
        return engine

    return _make
