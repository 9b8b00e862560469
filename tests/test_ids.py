import time

import pytest

from routerhosts.ids import InvalidIdError, new_ulid, parse_ulid

ALPHABET = set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")


def test_new_ulid_round_trips_through_parse():
    ulid = new_ulid()
    assert parse_ulid(ulid) == ulid


def test_new_ulid_has_canonical_shape():
    ulid = new_ulid()
    assert len(ulid) == 26
    assert set(ulid) <= ALPHABET


def test_new_ulids_are_unique():
    ulids = {new_ulid() for _ in range(200)}
    assert len(ulids) == 200


def test_later_ulid_sorts_after_earlier_one():
    first = new_ulid()
    time.sleep(0.005)
    second = new_ulid()
    assert first < second


def test_lower_case_is_normalised():
    ulid = new_ulid()
    assert parse_ulid(ulid.lower()) == ulid


def test_all_zero_ulid_is_valid():
    assert parse_ulid("0" * 26) == "0" * 26


def test_largest_ulid_is_valid():
    text = "7" + "Z" * 25
    assert parse_ulid(text) == text


def test_overflowing_ulid_is_rejected():
    with pytest.raises(InvalidIdError, match="overflow"):
        parse_ulid("8" + "0" * 25)


@pytest.mark.parametrize("text", ["", "not-a-valid-id", "0" * 25, "0" * 27])
def test_wrong_length_is_rejected(text):
    with pytest.raises(InvalidIdError, match="invalid length"):
        parse_ulid(text)


@pytest.mark.parametrize("bad", ["I", "L", "O", "U", "!", " "])
def test_characters_outside_alphabet_are_rejected(bad):
    with pytest.raises(InvalidIdError, match="invalid character"):
        parse_ulid(bad + "0" * 25)


def test_invalid_id_error_is_a_value_error():
    with pytest.raises(ValueError, match="invalid length"):
        parse_ulid("abc")