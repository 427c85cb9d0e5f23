from __future__ import annotations

import random

import pytest

from survey_engine.core.errors import ValidationError
from survey_engine.models.survey import OTHER_OPTION
from survey_engine.services.randomizer import UNKNOWN_POSITION, shuffle_with_positions

OPTIONS = ["Taxes", "Schools", "Roads", "Parks", "Transit"]


def test_without_randomize_display_order_is_authored_order() -> None:
    shuffled = shuffle_with_positions(OPTIONS, randomize=False)

    assert shuffled.display_order == tuple(OPTIONS)
    assert [shuffled.position_of(label) for label in OPTIONS] == [0, 1, 2, 3, 4]


def test_positions_map_back_to_authored_labels() -> None:
    shuffled = shuffle_with_positions(OPTIONS, rng=random.Random(7))

    assert sorted(shuffled.display_order) == sorted(OPTIONS)
    for label in shuffled.display_order:
        assert OPTIONS[shuffled.position_of(label)] == label
    assert shuffled.original_order() == tuple(OPTIONS)


def test_repeated_shuffles_produce_more_than_one_order() -> None:
    rng = random.Random(2024)
    orders = {shuffle_with_positions(OPTIONS, rng=rng).display_order for _ in range(20)}

    assert len(orders) > 1


def test_other_takes_the_trailing_logical_position() -> None:
    shuffled = shuffle_with_positions(OPTIONS, include_other=True, rng=random.Random(3))

    assert OTHER_OPTION in shuffled.display_order
    assert len(shuffled) == len(OPTIONS) + 1
    assert shuffled.position_of(OTHER_OPTION) == len(OPTIONS)


def test_unknown_label_has_no_position() -> None:
    shuffled = shuffle_with_positions(OPTIONS, randomize=False)

    assert shuffled.position_of("Libraries") == UNKNOWN_POSITION


def test_numeric_options_are_treated_as_labels() -> None:
    shuffled = shuffle_with_positions([1, 2, 3], randomize=False)

    assert list(shuffled) == ["1", "2", "3"]
    assert shuffled.position_of("3") == 2


def test_single_option_is_returned_unchanged() -> None:
    shuffled = shuffle_with_positions(["Only"], rng=random.Random(1))

    assert shuffled.display_order == ("Only",)
    assert shuffled.position_of("Only") == 0


def test_duplicate_labels_are_rejected() -> None:
    with pytest.raises(ValidationError):
        shuffle_with_positions(["Yes", "No", "Yes"])
