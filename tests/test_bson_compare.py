import bson
import pytest
from bson.raw_bson import RawBSONDocument

from migverifier.bson_compare import (
    BsonCompareError,
    MismatchDetails,
    compare_documents_with_details,
    documents_match,
)


def compare(src, dst):
    return compare_documents_with_details(bson.encode(src), bson.encode(dst))


SRC_ABC = {"_id": "a", "a": 1, "b": 2, "c": {"d": 1, "e": 2, "f": 3}}


def test_identical_documents():
    src = {"_id": "a", "a": 1, "b": 2}
    assert compare(src, src) is None


def test_missing_fields_on_destination():
    result = compare({"_id": "a", "a": 1, "b": 2}, {"_id": "a"})
    assert isinstance(result, MismatchDetails)
    assert result.missing_field_on_src == []
    assert sorted(result.missing_field_on_dst) == ["a", "b"]
    assert result.field_contents_differ == []


def test_missing_fields_on_source():
    result = compare(
        {"_id": "a", "a": 1, "b": 2},
        {"_id": "a", "a": 1, "aa": 11, "b": 2, "c": 3},
    )
    assert sorted(result.missing_field_on_src) == ["aa", "c"]
    assert result.missing_field_on_dst == []
    assert result.field_contents_differ == []


def test_top_level_order_changed():
    assert compare({"_id": "a", "a": 1, "b": 2}, {"_id": "a", "b": 2, "a": 1}) is None


def test_subdocument_order_changed():
    dst = {"_id": "a", "a": 1, "b": 2, "c": {"e": 2, "f": 3, "d": 1}}
    assert compare(SRC_ABC, dst) is None


def test_different_types():
    dst = {"_id": "a", "a": 1, "b": "2", "c": "cvalue"}
    result = compare(SRC_ABC, dst)
    assert result.missing_field_on_src == []
    assert result.missing_field_on_dst == []
    assert sorted(result.field_contents_differ) == ["b", "c"]


def test_different_values():
    dst = {"_id": "a", "a": 1, "b": 3, "c": {"d": 1, "e": 2, "f": 4}}
    result = compare(SRC_ABC, dst)
    assert result.missing_field_on_src == []
    assert result.missing_field_on_dst == []
    assert sorted(result.field_contents_differ) == ["b", "c"]


def test_multiple_mismatches():
    src = {"_id": "a", "a": 1, "b": 2, "bb": 3, "c": {"d": 1, "e": 2, "f": 3}}
    dst = {"_id": "a", "a": 1, "b": 2, "e": 99, "c": {"d": 1, "e": 2, "f": 4}}
    result = compare(src, dst)
    assert result.missing_field_on_src == ["e"]
    assert result.missing_field_on_dst == ["bb"]
    assert result.field_contents_differ == ["c"]


ARR_SRC = {**SRC_ABC, "arr": [1, 2, 3, 4]}


def test_identical_with_array():
    assert compare(ARR_SRC, ARR_SRC) is None


@pytest.mark.parametrize(
    "arr",
    [
        {"0": 1, "1": 2, "2": 3, "3": 4},
        [1, 4, 3, 2],
        [1, 2, 3, 4, 5],
        [1, 2, 3],
    ],
)
def test_array_differences(arr):
    result = compare(ARR_SRC, {**SRC_ABC, "arr": arr})
    assert result.missing_field_on_src == []
    assert result.missing_field_on_dst == []
    assert result.field_contents_differ == ["arr"]


def test_array_with_subdocument_order_changed_matches():
    src = {**SRC_ABC, "arr": [1, {"g": 4, "h": 5, "i": 6}]}
    dst = {**SRC_ABC, "arr": [1, {"h": 5, "g": 4, "i": 6}]}
    assert compare(src, dst) is None


def test_documents_match():
    assert documents_match(bson.encode({"a": 1, "b": 2}), bson.encode({"b": 2, "a": 1})) is True
    assert documents_match(bson.encode({"a": 1}), bson.encode({"a": 2})) is False
    assert documents_match(bson.encode({"a": 1}), bson.encode({"a": 1, "b": 2})) is False


def test_accepts_raw_bson_document():
    raw = RawBSONDocument(bson.encode({"x": [1, {"y": 2}]}))
    assert documents_match(raw, bson.encode({"x": [1, {"y": 2}]})) is True


def test_invalid_source_raises():
    with pytest.raises(BsonCompareError, match="source"):
        compare_documents_with_details(b"\x01\x02", bson.encode({"a": 1}))


def test_invalid_dest_raises():
    with pytest.raises(BsonCompareError, match="dest"):
        compare_documents_with_details(bson.encode({"a": 1}), b"\xff\xff\xff\xff\x00")


def test_array_keys_differ_raises():
    src = bson.encode({"a": {"0": 1}}).replace(b"\x03a\x00", b"\x04a\x00")
    dst = bson.encode({"a": {"1": 1}}).replace(b"\x03a\x00", b"\x04a\x00")
    with pytest.raises(BsonCompareError, match="Array keys differ"):
        compare_documents_with_details(src, dst)