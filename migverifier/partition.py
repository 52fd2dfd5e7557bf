"""Ranges of documents in a namespace, bounded by `_id`, and the queries that read them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

import bson
from bson import SON, MaxKey, MinKey, json_util
from bson.errors import BSONError
from bson.raw_bson import RawBSONDocument

from migverifier.cluster import ClusterInfo
from migverifier.logger import Logger
from migverifier.uuidutil import uuid_to_binary


@dataclass
class PartitionKey:
    """The identity of a partition: collection UUID, replicator id and lower bound."""

    source_uuid: Any
    mongosync_id: str = ""
    lower: Any = None


@dataclass
class Namespace:
    """A database and collection name."""

    db: str
    coll: str


def _bound_string(bound: Any) -> str:
    if isinstance(bound, MinKey):
        return '{"$minKey":1}'
    if isinstance(bound, MaxKey):
        return '{"$maxKey":1}'
    if isinstance(bound, RawBSONDocument):
        return json_util.dumps(bound)
    return str(bound)


def _uuid_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return uuid_to_binary(value)
    return value


@dataclass
class Partition:
    """A range of documents in a namespace, bounded by the `_id` field.

    For a capped collection the bounds cover the whole collection and
    documents are read in natural order.
    """

    key: PartitionKey
    ns: Namespace
    upper: Any = None
    is_capped: bool = False

    def __str__(self) -> str:
        return (
            f"{{db: {self.ns.db}, coll: {self.ns.coll}, collUUID: {self.key.source_uuid}, "
            f"mongosyncID: {self.key.mongosync_id}, lower: {self.lower_bound_string()}, "
            f"upper: {self.upper_bound_string()}}}"
        )

    def lower_bound_string(self) -> str:
        """The string form of the lower bound."""
        return _bound_string(self.key.lower)

    def upper_bound_string(self) -> str:
        """The string form of the upper bound."""
        return _bound_string(self.upper)

    def lower_bound_from_current(self, current: Any) -> Any:
        """The lower bound to save for a cursor positioned at `current`.

        None for capped collections and for an empty document; otherwise the
        document's `_id`. Raises ValueError if the document cannot be decoded
        or has no `_id`.
        """
        if self.is_capped:
            return None
        if current is None or len(current) == 0:
            return None

        if isinstance(current, RawBSONDocument):
            current = current.raw
        if isinstance(current, Mapping):
            doc = current
        else:
            try:
                doc = bson.decode(bytes(current))
            except (BSONError, ValueError) as exc:
                raise ValueError(f"error unmarshaling raw document: {exc}") from exc

        if "_id" in doc:
            return doc["_id"]
        raise ValueError("could not find an '_id' element in the raw document")

    def find_cmd(
        self,
        logger: Optional[Logger],
        start_at: Any,
        batch_size: Optional[int] = None,
    ) -> SON:
        """The find command that reads this partition without type bracketing.

        The cursor reads at majority after `start_at` and never times out.
        """
        cmd = SON(
            [
                ("find", self.ns.coll),
                ("collectionUUID", _uuid_value(self.key.source_uuid)),
                (
                    "readConcern",
                    SON([("level", "majority"), ("afterClusterTime", start_at)]),
                ),
                ("noCursorTimeout", True),
            ]
        )
        if batch_size is not None:
            cmd["batchSize"] = batch_size
        cmd.update(self.get_find_options(None, None))
        return cmd

    def get_find_options(
        self,
        cluster_info: Optional[ClusterInfo],
        filter_and_predicates: Optional[Iterable[Any]] = None,
    ) -> SON:
        """The sort, hint and filter options to read this partition's range."""
        return find_options(self, cluster_info, filter_and_predicates)

    def _filter_with_no_type_bracketing(self) -> SON:
        # $expr avoids type bracketing; $literal guards against the bounds
        # being interpreted as expressions.
        return SON(
            [
                (
                    "$and",
                    [
                        SON(
                            [
                                (
                                    "$expr",
                                    SON(
                                        [
                                            (
                                                "$gte",
                                                ["$_id", SON([("$literal", self.key.lower)])],
                                            )
                                        ]
                                    ),
                                )
                            ]
                        ),
                        SON(
                            [
                                (
                                    "$expr",
                                    SON(
                                        [
                                            (
                                                "$lte",
                                                ["$_id", SON([("$literal", self.upper)])],
                                            )
                                        ]
                                    ),
                                )
                            ]
                        ),
                    ],
                )
            ]
        )

    def _filter_with_type_bracketing(self) -> SON:
        return SON(
            [
                (
                    "$and",
                    [
                        SON([("_id", SON([("$gte", self.key.lower)]))]),
                        SON([("_id", SON([("$lte", self.upper)]))]),
                    ],
                )
            ]
        )


def find_options(
    partition: Optional[Partition],
    cluster_info: Optional[ClusterInfo],
    filter_and_predicates: Optional[Iterable[Any]] = None,
) -> SON:
    """Find options for reading `partition` (or a whole collection if it is None).

    Type bracketing is used only when cluster info is given and reports a
    server older than 5.0, or reports no version at all.
    """
    predicates = list(filter_and_predicates or [])

    if partition is None:
        if predicates:
            return SON([("filter", SON([("$and", predicates)]))])
        return SON()

    options = SON()
    if partition.is_capped:
        options["sort"] = SON([("$natural", 1)])
    else:
        options["sort"] = SON([("_id", 1)])

        allow_type_bracketing = False
        if cluster_info is not None:
            allow_type_bracketing = True
            if cluster_info.version_array:
                allow_type_bracketing = cluster_info.version_array[0] < 5

        if allow_type_bracketing:
            predicates.append(partition._filter_with_type_bracketing())
        else:
            predicates.append(partition._filter_with_no_type_bracketing())

        options["hint"] = SON([("_id", 1)])

    if predicates:
        options["filter"] = SON([("$and", predicates)])
    return options