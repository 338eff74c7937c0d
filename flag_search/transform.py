from __future__ import annotations

from typing import Iterator, Sequence, Tuple

from flag_search.geometry import CornerIndices, Waypoint


class RingView:
    """Bounds-checked index arithmetic over a fixed-size circular buffer."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError("Ring size must be positive.")
        self.size = int(size)

    def check(self, index: int) -> int:
        if index < 0 or index >= self.size:
            raise IndexError(f"Ring index {index} outside [0, {self.size}).")
        return index

    def wrap(self, index: int) -> int:
        return index % self.size

    def step(self, index: int, shift: int) -> int:
        return self.wrap(self.check(index) + shift)

    def span(self, start: int, limit: int, shift: int) -> int:
        """Number of indices visited stepping from ``start`` by ``shift`` up to ``limit`` (exclusive)."""
        self.check(start)
        self.check(limit)
        if shift > 0:
            count = self.wrap(limit - start)
        elif shift < 0:
            count = self.wrap(start - limit)
        else:
            raise ValueError("Shift must be +1 or -1.")
        return count if count != 0 else self.size

    def walk(self, start: int, limit: int, shift: int) -> Iterator[int]:
        for i in range(self.span(start, limit, shift)):
            yield self.wrap(start + i * shift)


def transform_ring(
    waypoints: Sequence[Waypoint],
    corners: CornerIndices,
    start: int,
    limit: int,
    shift: int,
) -> Tuple[Tuple[Waypoint, ...], CornerIndices]:
    """
    Re-slice a circular waypoint ring into a linear path.

    Walks from ``start`` in steps of ``shift`` (+1 clockwise, -1 counter-clockwise)
    until ``limit`` is reached (exclusive; ``start == limit`` keeps the whole ring).
    Corners inside the kept span are remapped to their new positions; the others
    become None.
    """
    if shift not in (1, -1):
        raise ValueError(f"Shift must be +1 or -1, got {shift}.")

    view = RingView(len(waypoints))
    remapped = {"ll": None, "ul": None, "ur": None, "lr": None}
    by_ring_index = {
        index: name
        for name, index in zip(("ll", "ul", "ur", "lr"), corners.as_tuple())
        if index is not None
    }

    path = []
    for new_index, ring_index in enumerate(view.walk(start, limit, shift)):
        path.append(waypoints[ring_index])
        name = by_ring_index.get(ring_index)
        if name is not None:
            remapped[name] = new_index

    return tuple(path), CornerIndices(**remapped)
