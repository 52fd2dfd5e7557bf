import pytest
from bson.int64 import Int64

from migverifier.numeric import to_numeric_type_of


def test_converts_to_int_type():
    foo = 234
    bar = to_numeric_type_of(1, foo)
    assert type(bar) is type(foo)
    assert bar == 1


def test_converts_to_float_type():
    foo_float = 234.467
    bar_float = to_numeric_type_of(1, foo_float)
    assert type(bar_float) is type(foo_float)
    assert bar_float == 1.0


def test_int_subclass_is_preserved():
    result = to_numeric_type_of(7, Int64(5))
    assert type(result) is Int64
    assert result == 7


def test_float_to_int_truncates_toward_zero():
    assert to_numeric_type_of(3.9, 0) == 3
    assert to_numeric_type_of(-3.9, 0) == -3


@pytest.mark.parametrize("like", ["1", None, True, [1]])
def test_rejects_non_numeric_target(like):
    with pytest.raises(TypeError):
        to_numeric_type_of(1, like)


@pytest.mark.parametrize("value", ["1", None, False])
def test_rejects_non_numeric_value(value):
    with pytest.raises(TypeError):
        to_numeric_type_of(value, 1)