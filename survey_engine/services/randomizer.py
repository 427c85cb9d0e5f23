from __future__ import annotations

import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Tuple, Union

from survey_engine.core.errors import ValidationError
from survey_engine.models.survey import OTHER_OPTION

UNKNOWN_POSITION = -1


@dataclass(frozen=True)
class ShuffledOptions:
    """Display order for one question render plus each label's authored position."""

    display_order: Tuple[str, ...]
    original_positions: Mapping[str, int]

    def position_of(self, label: str) -> int:
        """Return the authored (pre-shuffle) index of ``label``, or -1 if unknown."""

        return self.original_positions.get(label, UNKNOWN_POSITION)

    def original_order(self) -> Tuple[str, ...]:
        """Rebuild the authored order from the position mapping."""

        return tuple(sorted(self.original_positions, key=self.original_positions.__getitem__))

    def __iter__(self) -> Iterator[str]:
        return iter(self.display_order)

    def __len__(self) -> int:
        return len(self.display_order)


def shuffle_with_positions(
    options: Iterable[Union[str, int]],
    *,
    randomize: bool = True,
    include_other: bool = False,
    rng: Optional[random.Random] = None,
) -> ShuffledOptions:
    """Return a fresh display permutation of ``options`` with a position lookup.

    With ``randomize`` false the display order is the authored order and the
    mapping is the identity. Otherwise a Fisher-Yates shuffle is applied using
    ``rng`` (system entropy when omitted, so reloads never repeat a seed).
    ``include_other`` appends the free-text sentinel as the trailing logical
    option; it is shuffled like any other entry.
    """

    labels = [str(option) for option in options]
    if include_other:
        labels.append(OTHER_OPTION)

    if len(set(labels)) != len(labels):
        raise ValidationError("option labels must be unique to recover their positions")

    indexed = list(enumerate(labels))
    if randomize and len(indexed) > 1:
        generator = rng if rng is not None else random.SystemRandom()
        for i in range(len(indexed) - 1, 0, -1):
            j = generator.randint(0, i)
            indexed[i], indexed[j] = indexed[j], indexed[i]

    positions = {label: original_index for original_index, label in indexed}
    return ShuffledOptions(
        display_order=tuple(label for _, label in indexed),
        original_positions=MappingProxyType(positions),
    )


__all__ = ["ShuffledOptions", "UNKNOWN_POSITION", "shuffle_with_positions"]
