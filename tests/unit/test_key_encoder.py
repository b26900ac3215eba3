import pytest

from mm_replicator.key_encoder import decode_key, encode_key, encode_row_key, key_parts


@pytest.mark.unit
def test_encode_single_column_key():
    assert encode_key(['id'], [1]) == 'id|1'


@pytest.mark.unit
def test_encode_composite_key_keeps_column_order():
    assert encode_key(['first_id', 'second_id'], [1, 2]) == 'first_id|1|second_id|2'
    assert encode_key(['second_id', 'first_id'], [2, 1]) == 'second_id|2|first_id|1'


@pytest.mark.unit
def test_encode_row_key():
    row = {'name': 'bob', 'id': 7, 'tenant': 'a'}
    assert encode_row_key(['tenant', 'id'], row) == 'tenant|a|id|7'


@pytest.mark.unit
def test_encode_key_rejects_bad_input():
    with pytest.raises(ValueError):
        encode_key(['id'], [1, 2])
    with pytest.raises(ValueError):
        encode_key([], [])


@pytest.mark.unit
def test_decode_key():
    assert decode_key('first_id|1|second_id|2') == {'first_id': '1', 'second_id': '2'}
    with pytest.raises(ValueError):
        decode_key('first_id|1|second_id')


@pytest.mark.unit
def test_values_containing_separator_are_ambiguous():
    # not escaped: both rows map to the same key
    assert encode_key(['a'], ['x|b|y']) == encode_key(['a', 'b'], ['x', 'y'])
    with pytest.raises(ValueError):
        decode_key(encode_key(['a'], ['x|y']))


@pytest.mark.unit
def test_key_parts():
    def quote(name):
        return f'"{name}"'

    assert key_parts(['id'], 'NEW', quote) == ["'id|'", 'NEW."id"']
    assert key_parts(['first_id', 'second_id'], 'OLD', quote) == [
        "'first_id|'", 'OLD."first_id"', "'|second_id|'", 'OLD."second_id"',
    ]
