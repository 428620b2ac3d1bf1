import pytest

from errors import ValidationError
from ratings import (
    DEFAULT_RATING,
    RATING_LABELS,
    label_to_value,
    resolve_rating,
    value_to_label,
)


def test_value_label_mapping_is_a_bijection():
    for value in range(1, 6):
        assert label_to_value(value_to_label(value)) == value
    assert [value_to_label(v) for v in range(1, 6)] == list(RATING_LABELS)


@pytest.mark.parametrize("value", [0, 6, -1, 100, None, "3", 2.5, True])
def test_out_of_range_values_fall_back_to_lowest(value):
    assert value_to_label(value) == "undecided"


def test_unknown_label_maps_to_one():
    assert label_to_value("amazing") == 1
    assert label_to_value(None) == 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, "undecided"),
        ("", "undecided"),
        (4, "satisfied"),
        ("5", "would repeat"),
        ("meh", "meh"),
        ("  Okay ", "okay"),
        (3.0, "okay"),
    ],
)
def test_resolve_rating(raw, expected):
    assert resolve_rating(raw) == expected


@pytest.mark.parametrize("raw", [0, 9, "fantastic", "7", False, 1.5])
def test_resolve_rating_fallback_and_strict(raw):
    assert resolve_rating(raw) == DEFAULT_RATING
    with pytest.raises(ValidationError):
        resolve_rating(raw, strict=True)
