"""Editable target quadrilateral with a derived center handle."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger

from perspective_mapper.geometry import as_point, as_quad, normal, quadrilateral_center

DEFAULT_MAGNETIC_RADIUS = 0.2
TARGET_COUNT = 4


class HandleKind(Enum):
    NONE = "none"
    TARGET = "target"
    CENTER = "center"


@dataclass(frozen=True, slots=True)
class Handle:
    """Identifies an addressable control point. Positions live in ``HandleModel``."""

    kind: HandleKind
    index: Optional[int] = None

    @classmethod
    def target(cls, index: int) -> "Handle":
        if not 0 <= index < TARGET_COUNT:
            raise IndexError(f"Target index {index} out of range")
        return cls(HandleKind.TARGET, index)

    @property
    def is_none(self) -> bool:
        return self.kind is HandleKind.NONE

    def __str__(self) -> str:
        if self.kind is HandleKind.TARGET:
            return f"target[{self.index}]"
        return self.kind.value


NO_HANDLE = Handle(HandleKind.NONE)
CENTER_HANDLE = Handle(HandleKind.CENTER)
TARGET_HANDLES: Tuple[Handle, ...] = tuple(Handle.target(i) for i in range(TARGET_COUNT))
# Iteration order doubles as the tie-break order of select_closest.
ALL_HANDLES: Tuple[Handle, ...] = TARGET_HANDLES + (CENTER_HANDLE,)


@dataclass(frozen=True, slots=True, eq=False)
class HandleSnapshot:
    """Read-only view of the handle state for a single tick."""

    targets: np.ndarray  # shape (4, 2)
    sources: np.ndarray  # shape (4, 2)
    center: np.ndarray  # shape (2,)
    current: Handle

    def position_of(self, handle: Handle) -> Optional[np.ndarray]:
        if handle.kind is HandleKind.TARGET:
            return self.targets[handle.index]
        if handle.kind is HandleKind.CENTER:
            return self.center
        return None


def _frozen(array: np.ndarray) -> np.ndarray:
    array = array.copy()
    array.setflags(write=False)
    return array


def _side(offset: np.ndarray, line_normal: np.ndarray) -> float:
    # A point lying on the line counts as the positive side.
    return 1.0 if float(np.dot(offset, line_normal)) >= 0.0 else -1.0


class HandleModel:
    """Owns four target points paired with four source points.

    Targets are kept in perimeter order. Every drag of a single target is
    checked against the lines it could cross to make the quadrilateral
    self-intersecting; such moves are dropped rather than clamped.
    """

    def __init__(
        self,
        sources: Optional[Iterable[Iterable[float]]] = None,
        magnetic_radius: float = DEFAULT_MAGNETIC_RADIUS,
    ) -> None:
        self._targets = np.zeros((TARGET_COUNT, 2), dtype=np.float64)
        self._sources = np.zeros((TARGET_COUNT, 2), dtype=np.float64)
        self._current = NO_HANDLE
        self.magnetic_radius = magnetic_radius
        if sources is not None:
            self.set_source_set(sources)

    @property
    def magnetic_radius(self) -> float:
        return self._magnetic_radius

    @magnetic_radius.setter
    def magnetic_radius(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Magnetic radius must be positive, got {value}")
        self._magnetic_radius = float(value)

    # Selection

    @property
    def current(self) -> Handle:
        return self._current

    def current_selection(self) -> Handle:
        return self._current

    def handles(self) -> Tuple[Handle, ...]:
        return ALL_HANDLES

    def select_none(self) -> None:
        self._current = NO_HANDLE

    def select_by_index(self, index: int) -> Handle:
        """Select targets 1-4 by one-based index, or the center with 5."""
        if index < 1 or index > len(ALL_HANDLES):
            raise IndexError("Handle index out of range")
        self._current = ALL_HANDLES[index - 1]
        return self._current

    def select_closest(
        self,
        point: Iterable[float],
        magnetic_radius: Optional[float] = None,
    ) -> Handle:
        """Select the handle nearest to ``point`` if it lies within the magnetic radius."""
        radius = self._magnetic_radius if magnetic_radius is None else magnetic_radius
        query = as_point(point)

        closest = NO_HANDLE
        min_distance = float("inf")
        for handle in ALL_HANDLES:
            distance = float(np.linalg.norm(self._position(handle) - query))
            if distance < min_distance:
                min_distance = distance
                closest = handle

        if min_distance > radius:
            closest = NO_HANDLE
        self._current = closest
        logger.debug(f"Closest handle to {query.tolist()}: {closest} (distance={min_distance:.3f})")
        return closest

    # Positions

    def position_of(self, handle: Handle) -> Optional[np.ndarray]:
        if handle.is_none:
            return None
        return self._position(handle).copy()

    def current_position(self) -> Optional[np.ndarray]:
        return self.position_of(self._current)

    def center_position(self) -> np.ndarray:
        return quadrilateral_center(self._targets)

    def target_positions(self) -> np.ndarray:
        return self._targets.copy()

    def source_positions(self) -> np.ndarray:
        return self._sources.copy()

    def set_position(self, handle: Handle, position: Iterable[float]) -> bool:
        """Move a handle, honoring the non-self-intersection constraint.

        Returns:
            True if the targets changed. A rejected target move and the
            ``NO_HANDLE`` case both return False and leave the state as is.
        """
        if handle.is_none:
            return False

        new_position = as_point(position)
        if handle.kind is HandleKind.CENTER:
            translation = new_position - self.center_position()
            self._targets += translation
            return True

        if self._crosses_constraint(handle.index, new_position):
            logger.debug(f"Rejected move of {handle} to {new_position.tolist()}")
            return False
        self._targets[handle.index] = new_position
        return True

    def set_target_positions(self, positions: Iterable[Iterable[float]]) -> None:
        """Assign all targets at once, bypassing the drag constraint."""
        self._targets = as_quad(positions, what="positions")

    # Sources

    def set_source_set(self, sources: Iterable[Iterable[float]]) -> None:
        """Replace the sources and reset every target onto its source."""
        quad = as_quad(sources, what="source points")
        self._sources = quad
        self._targets = quad.copy()

    def update_source_set(self, sources: Iterable[Iterable[float]]) -> None:
        """Replace the sources while keeping the current targets."""
        self._sources = as_quad(sources, what="source points")

    def snapshot(self) -> HandleSnapshot:
        return HandleSnapshot(
            targets=_frozen(self._targets),
            sources=_frozen(self._sources),
            center=_frozen(self.center_position()),
            current=self._current,
        )

    # Constraint helpers

    def diagonal_excluding(self, index: int) -> np.ndarray:
        """Direction of the diagonal joining the two neighbours of ``index``."""
        previous_idx = (index - 1) % TARGET_COUNT
        next_idx = (index + 1) % TARGET_COUNT
        return self._targets[previous_idx] - self._targets[next_idx]

    def opposite_sides(self, index: int) -> List[np.ndarray]:
        """Directions of the two edges that do not touch ``index``."""
        previous_idx = (index - 1) % TARGET_COUNT
        next_idx = (index + 1) % TARGET_COUNT
        opposite_idx = (index + 2) % TARGET_COUNT
        return [
            self._targets[previous_idx] - self._targets[opposite_idx],
            self._targets[next_idx] - self._targets[opposite_idx],
        ]

    def is_crossing_line(self, index: int, new_position: np.ndarray, direction: np.ndarray) -> bool:
        """Whether moving target ``index`` flips its side of a line, measured from the center."""
        line_normal = normal(direction)
        center = self.center_position()
        before = _side(self._targets[index] - center, line_normal)
        after = _side(new_position - center, line_normal)
        return before != after

    def _crosses_constraint(self, index: int, new_position: np.ndarray) -> bool:
        lines = [self.diagonal_excluding(index), *self.opposite_sides(index)]
        return any(self.is_crossing_line(index, new_position, line) for line in lines)

    def _position(self, handle: Handle) -> np.ndarray:
        if handle.kind is HandleKind.TARGET:
            return self._targets[handle.index]
        if handle.kind is HandleKind.CENTER:
            return self.center_position()
        raise ValueError("The empty handle has no position")
