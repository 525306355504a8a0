"""
Dense, zero-based ordering over sequences of entity handles.

Every function here is pure: it takes a sequence of hashable handles (entity
ids) and returns a new list or a position mapping. Callers apply the mapping
to their entities and persist whatever changed.
"""
from typing import Hashable, Iterable, Sequence, TypeVar

from taskboard.core.errors import OrderingInvariantError

H = TypeVar("H", bound=Hashable)


def append(seq: Sequence[H]) -> int:
    """Position a new entry takes when added at the end of ``seq``."""
    return len(seq)


def remove_and_compact(seq: Sequence[H], handle: H) -> list[H]:
    """Return ``seq`` without ``handle``; later entries shift left by one."""
    return [h for h in seq if h != handle]


def clamp(index: int, length: int) -> int:
    if length < 0:
        raise OrderingInvariantError(f"negative sequence length: {length}")
    return max(0, min(index, length))


def insert_at(seq: Sequence[H], handle: H, index: int) -> list[H]:
    """Insert ``handle`` at ``index`` clamped to ``[0, len(seq)]``."""
    result = list(seq)
    result.insert(clamp(index, len(result)), handle)
    return result


def check_dense(positions: Iterable[int]) -> None:
    values = sorted(positions)
    if values != list(range(len(values))):
        raise OrderingInvariantError(f"positions are not dense: {values}")


def renumber(seq: Sequence[H]) -> dict[H, int]:
    """Map each handle to its index in ``seq``."""
    positions = {handle: index for index, handle in enumerate(seq)}
    if len(positions) != len(seq):
        raise OrderingInvariantError("duplicate handle in ordered sequence")
    check_dense(positions.values())
    return positions


def apply(entities: Iterable, seq: Sequence[H]) -> list:
    """
    Write the positions of ``seq`` onto ``entities`` (matched by ``id``).

    Returns only the entities whose position actually changed.
    """
    by_id = {entity.id: entity for entity in entities}
    changed = []
    for handle, position in renumber(seq).items():
        entity = by_id[handle]
        if entity.position != position:
            entity.position = position
            changed.append(entity)
    return changed
