# migverifier

Building blocks for checking that a MongoDB migration copied data faithfully.
It is a library and has no command-line entry point.

## Installation

```
pip install migverifier
```

For running the test suite:

```
pip install "migverifier[test]"
pytest
```

## Contents

- `migverifier.bson_compare`: compares two BSON documents while ignoring field order.
  Arrays keep their order, but documents inside them are compared unordered.
  `compare_documents_with_details(src_raw, dst_raw)` returns a `MismatchDetails`
  (`missing_field_on_src`, `missing_field_on_dst`, `field_contents_differ`), or `None`
  when the documents match. `documents_match(src_raw, dst_raw)` returns a boolean.
  Documents that cannot be parsed raise `BsonCompareError`.
- `migverifier.keystring`: `keystring_to_bson(version, data)` decodes a server keystring,
  such as the one inside a change stream resume token, into a list of `("", value)` pairs.
  `data` can be bytes or a hex string, and `version` is a `KeyStringVersion` (`V0` or `V1`).
  Decimal128 values come back as the nearest double. Bad input raises `KeyStringError`.
- `migverifier.errors`: classifies pymongo and network errors. It has `get_error_code`,
  `error_codes`, `is_transient_error`, `is_namespace_not_found_error`,
  `is_duplicate_key_error`, `has_server_error_message`,
  `get_actual_collection_from_collection_uuid_mismatch_error` and other `is_*` predicates.
- `migverifier.retry_errors`: retry timing constants (`DEFAULT_DURATION_LIMIT`,
  `MIN_SLEEP_TIME`, `MAX_SLEEP_TIME`), `next_sleep_time(current)` for the backoff sequence
  1, 2, 4, 8, 16, 16, … seconds, and the exceptions `RetryDurationLimitExceededError` and
  `RetryCancelledError`.
- `migverifier.partition`: `Partition`, `PartitionKey` and `Namespace` describe one `_id`
  range of a collection. `Partition.find_cmd` builds the `find` command that reads it, and
  `Partition.get_find_options` / `find_options` build the sort, hint and filter. Type
  bracketing is used only for servers older than 5.0.
- `migverifier.cluster`: helpers that ask the server things. They are `get_cluster_info`
  (version array and `ClusterTopology`), `get_shard_key`, `get_collection_spec_if_exists`,
  `get_cluster_time_from_session`, `server_thinks_these_match` and `full_name`.
- `migverifier.uuidutil`: `new_uuid`, `uuid_to_binary`, `uuid_from_binary`, `uuid_to_key`
  and `uuid_from_key` convert UUIDs to and from BSON binary (subtype 4) and strings.
- `migverifier.reportutils`: formatting for reports. It has `duration_to_hms`, `fmt_float`,
  `fmt_bytes`, `fmt_percent`, `bytes_to_unit`, `find_best_unit` and the `DataUnit` enum.
- `migverifier.logger`: a `Logger` wrapper that carries structured fields.
  It also has `new_default_logger`, `new_debug_logger`, `new_rotating_handler` and
  `invariant`, which raises `InvariantError`.
- `migverifier.numeric`: `to_numeric_type_of(value, like)` converts a number to the type of
  another number.

## Examples

```python
import bson
from migverifier.bson_compare import compare_documents_with_details

src = bson.encode({"_id": "a", "a": 1, "b": 2})
dst = bson.encode({"_id": "a", "b": 2, "a": 1})
assert compare_documents_with_details(src, dst) is None
```

```python
from migverifier.keystring import KeyStringVersion, keystring_to_bson

keystring_to_bson(KeyStringVersion.V1, "2b0204")  # [("", 1)]
```

```python
from bson import ObjectId, Timestamp
from migverifier.partition import Namespace, Partition, PartitionKey
from migverifier.uuidutil import new_uuid

partition = Partition(
    key=PartitionKey(source_uuid=new_uuid(), lower=ObjectId("0" * 24)),
    ns=Namespace(db="testDB", coll="testColl"),
    upper=ObjectId("f" * 24),
)
cmd = partition.find_cmd(None, Timestamp(42, 43))
```

```python
from datetime import timedelta
from migverifier.reportutils import duration_to_hms, fmt_bytes

fmt_bytes(1234567)                      # "1.18 MiB"
duration_to_hms(timedelta(seconds=61))  # "1m 1s"
```

## What it does not do

- There is no retry loop. `migverifier.retry_errors` gives the backoff timing and the
  exceptions, and `migverifier.errors.is_transient_error` says whether an error is worth
  retrying. The calling code has to run the attempts itself.
- It does not split a collection into partitions. A `Partition` is built from bounds that
  the caller supplies.
- It does not look up a collection's UUID from its name. Pass the UUID to `PartitionKey`
  yourself. `get_collection_spec_if_exists` returns it as `CollectionSpec.uuid`.
- It does not run a verification or store its results. There is no command, server or
  report store.