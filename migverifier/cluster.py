"""Queries about a cluster: version, topology, collection specs and sharding."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from bson.timestamp import Timestamp


class ClusterTopology(str, enum.Enum):
    """How a cluster is deployed."""

    SHARDED = "sharded"
    REPLSET = "replset"


@dataclass
class ClusterInfo:
    """A cluster's server version and topology."""

    version_array: Optional[list[int]] = None
    topology: Optional[ClusterTopology] = None


class CollectionSpecError(RuntimeError):
    """Raised when a collection specification is unexpected."""


_KNOWN_SPEC_FIELDS = frozenset({"name", "type", "options", "info", "idIndex"})
_KNOWN_INFO_FIELDS = frozenset({"readOnly", "uuid"})


@dataclass
class CollectionSpec:
    """A collection's specification as listCollections reports it."""

    name: str
    type: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    read_only: bool = False
    uuid: Any = None
    id_index: Optional[dict[str, Any]] = None
    extra: dict[str, Any] = field(default_factory=dict)
    info_extra: dict[str, Any] = field(default_factory=dict)


def _spec_from_document(doc: Mapping[str, Any]) -> CollectionSpec:
    info = doc.get("info") or {}
    return CollectionSpec(
        name=doc.get("name", ""),
        type=doc.get("type", ""),
        options=dict(doc.get("options") or {}),
        read_only=bool(info.get("readOnly", False)),
        uuid=info.get("uuid"),
        id_index=dict(doc["idIndex"]) if doc.get("idIndex") is not None else None,
        extra={k: v for k, v in doc.items() if k not in _KNOWN_SPEC_FIELDS},
        info_extra={k: v for k, v in info.items() if k not in _KNOWN_INFO_FIELDS},
    )


def server_thinks_these_match(
    client: Any,
    a: Any,
    b: Any,
    tinker: Optional[Iterable[Mapping[str, Any]]] = None,
) -> bool:
    """Ask the server whether it considers `a` and `b` equal.

    `tinker` is an optional list of stages run on the {a, b} document
    before the comparison.
    """
    pipeline: list[Mapping[str, Any]] = [
        {"$documents": [{"a": {"$literal": a}, "b": {"$literal": b}}]},
        {"$match": {"$expr": {"$eq": ["$a", "$b"]}}},
    ]
    if tinker:
        pipeline[1:1] = list(tinker)

    cursor = client["admin"].aggregate(pipeline)
    try:
        return any(True for _ in cursor)
    finally:
        cursor.close()


def get_cluster_time_from_session(session: Any) -> Timestamp:
    """The cluster time a session has seen."""
    cluster_time = session.cluster_time
    if cluster_time is None:
        raise ValueError("failed to find clusterTime in session cluster time document (None)")
    if "$clusterTime" in cluster_time:
        cluster_time = cluster_time["$clusterTime"] or {}
    value = cluster_time.get("clusterTime")
    if value is None:
        return Timestamp(0, 0)
    if not isinstance(value, Timestamp):
        raise ValueError(
            f"failed to find clusterTime in session cluster time document ({cluster_time})"
        )
    return value


def get_cluster_info(client: Any) -> ClusterInfo:
    """Fetch the cluster's version array and topology."""
    admin = client["admin"]
    build_info = admin.command("buildinfo")
    version_array = build_info.get("versionArray")
    if version_array is not None:
        version_array = [int(v) for v in version_array]

    hello = admin.command("hello")
    topology = (
        ClusterTopology.SHARDED if hello.get("msg") == "isdbgrid" else ClusterTopology.REPLSET
    )
    return ClusterInfo(version_array=version_array, topology=topology)


def full_name(collection: Any) -> str:
    """The collection's full namespace, "db.coll"."""
    return f"{collection.database.name}.{collection.name}"


def get_collection_spec_if_exists(collection: Any) -> Optional[CollectionSpec]:
    """The collection's specification, or None if it does not exist.

    Raises CollectionSpecError if the specification holds unrecognised
    fields or if more than one collection matches.
    """
    docs = list(collection.database.list_collections(filter={"name": collection.name}))
    if not docs:
        return None
    if len(docs) > 1:
        raise CollectionSpecError(
            f"received multiple results ({docs}) when fetching "
            f"{full_name(collection)}'s specification"
        )
    spec = _spec_from_document(docs[0])
    if spec.extra or spec.info_extra:
        raise CollectionSpecError(
            f"{full_name(collection)}'s specification ({docs[0]}) contains unrecognized fields"
        )
    return spec


def get_shard_key(collection: Any) -> Optional[Mapping[str, Any]]:
    """The collection's shard key, or None if it is unsharded."""
    namespace = full_name(collection)
    config_collections = collection.database.client["config"]["collections"]
    doc = config_collections.find_one({"_id": namespace})
    if doc is None:
        return None
    return doc.get("key")