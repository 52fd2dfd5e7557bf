import pytest
from bson.timestamp import Timestamp

from migverifier.cluster import (
    ClusterTopology,
    CollectionSpecError,
    full_name,
    get_cluster_info,
    get_cluster_time_from_session,
    get_collection_spec_if_exists,
    get_shard_key,
    server_thinks_these_match,
)


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)
        self.closed = False

    def __iter__(self):
        return iter(self._docs)

    def close(self):
        self.closed = True


class FakeCollection:
    def __init__(self, database, name, docs=()):
        self.database = database
        self.name = name
        self.docs = list(docs)

    def find_one(self, filter):
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in filter.items()):
                return doc
        return None


class FakeDatabase:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.collection_docs = []
        self.commands = {}
        self.aggregate_docs = []
        self.pipelines = []
        self.cursors = []
        self._collections = {}

    def __getitem__(self, name):
        return self._collections.setdefault(name, FakeCollection(self, name))

    def list_collections(self, filter=None, **kwargs):
        name = (filter or {}).get("name")
        return iter([d for d in self.collection_docs if name is None or d.get("name") == name])

    def command(self, name):
        return self.commands[name]

    def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        cursor = FakeCursor(self.aggregate_docs)
        self.cursors.append(cursor)
        return cursor


class FakeClient:
    def __init__(self):
        self._dbs = {}

    def __getitem__(self, name):
        return self._dbs.setdefault(name, FakeDatabase(self, name))


class FakeSession:
    def __init__(self, cluster_time):
        self.cluster_time = cluster_time


def test_server_match_true_when_document_returned():
    client = FakeClient()
    client["admin"].aggregate_docs = [{"a": 1, "b": 1.0}]
    assert server_thinks_these_match(client, 1, 1.0) is True
    assert client["admin"].cursors[0].closed


def test_server_match_false_when_no_document():
    client = FakeClient()
    assert server_thinks_these_match(client, 1, 2) is False
    pipeline = client["admin"].pipelines[0]
    assert pipeline[0] == {"$documents": [{"a": {"$literal": 1}, "b": {"$literal": 2}}]}
    assert pipeline[-1] == {"$match": {"$expr": {"$eq": ["$a", "$b"]}}}


def test_server_match_inserts_tinker_after_documents():
    client = FakeClient()
    extra = [{"$project": {"a": 1}}, {"$unset": "b.x"}]
    server_thinks_these_match(client, {"x": 1}, {"x": 2}, extra)
    pipeline = client["admin"].pipelines[0]
    assert pipeline[1:3] == extra
    assert len(pipeline) == 4


def test_cluster_time_from_session():
    ts = Timestamp(42, 43)
    assert get_cluster_time_from_session(FakeSession({"clusterTime": ts})) == ts
    assert get_cluster_time_from_session(FakeSession({"$clusterTime": {"clusterTime": ts}})) == ts


def test_cluster_time_missing_session_time():
    with pytest.raises(ValueError):
        get_cluster_time_from_session(FakeSession(None))


def test_cluster_info_sharded():
    client = FakeClient()
    client["admin"].commands = {
        "buildinfo": {"versionArray": [6, 0, 1, 0]},
        "hello": {"msg": "isdbgrid"},
    }
    info = get_cluster_info(client)
    assert info.version_array == [6, 0, 1, 0]
    assert info.topology is ClusterTopology.SHARDED


def test_cluster_info_replset_without_version():
    client = FakeClient()
    client["admin"].commands = {"buildinfo": {}, "hello": {"isWritablePrimary": True}}
    info = get_cluster_info(client)
    assert info.version_array is None
    assert info.topology is ClusterTopology.REPLSET


def test_full_name():
    client = FakeClient()
    coll = client["mydb"]["mycoll"]
    assert full_name(coll) == "mydb.mycoll"


def test_collection_spec_exists():
    client = FakeClient()
    db = client["mydb"]
    db.collection_docs = [
        {
            "name": "mycoll",
            "type": "collection",
            "options": {},
            "info": {"readOnly": False, "uuid": b"u" * 16},
            "idIndex": {"v": 2, "key": {"_id": 1}, "name": "_id_"},
        }
    ]
    spec = get_collection_spec_if_exists(db["mycoll"])
    assert spec.name == "mycoll"
    assert spec.type == "collection"
    assert spec.uuid == b"u" * 16
    assert spec.id_index["key"] == {"_id": 1}
    assert spec.read_only is False


def test_collection_spec_missing():
    client = FakeClient()
    assert get_collection_spec_if_exists(client["mydb"]["nothing"]) is None


def test_collection_spec_unknown_field():
    client = FakeClient()
    db = client["mydb"]
    db.collection_docs = [{"name": "mycoll", "type": "collection", "surprise": 1}]
    with pytest.raises(CollectionSpecError):
        get_collection_spec_if_exists(db["mycoll"])


def test_collection_spec_unknown_info_field():
    client = FakeClient()
    db = client["mydb"]
    db.collection_docs = [{"name": "mycoll", "info": {"readOnly": True, "odd": 1}}]
    with pytest.raises(CollectionSpecError):
        get_collection_spec_if_exists(db["mycoll"])


def test_collection_spec_multiple_results():
    client = FakeClient()
    db = client["mydb"]
    db.collection_docs = [{"name": "mycoll"}, {"name": "mycoll"}]
    with pytest.raises(CollectionSpecError):
        get_collection_spec_if_exists(db["mycoll"])


def test_shard_key_present():
    client = FakeClient()
    client["config"]["collections"].docs = [{"_id": "mydb.mycoll", "key": {"x": "hashed"}}]
    assert get_shard_key(client["mydb"]["mycoll"]) == {"x": "hashed"}


def test_shard_key_absent():
    client = FakeClient()
    client["config"]["collections"].docs = [{"_id": "mydb.other", "key": {"y": 1}}]
    assert get_shard_key(client["mydb"]["mycoll"]) is None


def test_shard_key_document_without_key():
    client = FakeClient()
    client["config"]["collections"].docs = [{"_id": "mydb.mycoll"}]
    assert get_shard_key(client["mydb"]["mycoll"]) is None