"""Tick-driven controller tying operator input to a surface's handle model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple

import numpy as np
from loguru import logger

from perspective_mapper.calibration.store import HandleStyle, MappingRecord, MappingStore
from perspective_mapper.config import ControlsConfig, SurfaceConfig
from perspective_mapper.geometry import DegenerateInputError, compute_homography, to_matrix4x4
from perspective_mapper.mapping.handles import (
    ALL_HANDLES,
    DEFAULT_MAGNETIC_RADIUS,
    HandleModel,
    HandleSnapshot,
)
from perspective_mapper.mapping.invariants import MappingMode, invariant_sources


class Command(Enum):
    TOGGLE_INTERACTIVE = "toggle_interactive"
    RESET = "reset"
    TOGGLE_TEST_PATTERN = "toggle_test_pattern"
    EXIT_WITHOUT_SAVING = "exit_without_saving"
    NEXT_HANDLE = "next_handle"
    PREVIOUS_HANDLE = "previous_handle"
    SELECT_1 = "select_1"
    SELECT_2 = "select_2"
    SELECT_3 = "select_3"
    SELECT_4 = "select_4"
    SELECT_5 = "select_5"


_SELECT_COMMANDS = {
    Command.SELECT_1: 1,
    Command.SELECT_2: 2,
    Command.SELECT_3: 3,
    Command.SELECT_4: 4,
    Command.SELECT_5: 5,
}


@dataclass(frozen=True, slots=True)
class InputEvent:
    """Operator input gathered by a backend for one tick.

    ``pointer`` is in normalized device coordinates of this surface and may
    be None when the backend has no pointer. ``nudge`` holds keyboard axis
    values in [-1, 1]; ``fast`` and ``slow`` scale it.
    """

    pointer: Optional[Tuple[float, float]] = None
    pointer_on_surface: bool = True
    pressed: bool = False
    released: bool = False
    nudge: Tuple[float, float] = (0.0, 0.0)
    fast: bool = False
    slow: bool = False
    dt: float = 0.0
    commands: FrozenSet[Command] = field(default_factory=frozenset)


class HeldNudge:
    """Keeps a nudge key held between the repeat events of a backend without key-up events.

    A key counts as held until no repeat has arrived for ``hold_timeout``
    seconds, so a held key nudges on every tick instead of only on ticks
    that carry a repeat.
    """

    def __init__(self, hold_timeout: float = 0.25) -> None:
        if hold_timeout <= 0:
            raise ValueError(f"hold_timeout must be positive, got {hold_timeout}")
        self.hold_timeout = hold_timeout
        self._nudge: Tuple[float, float] = (0.0, 0.0)
        self._fast = False
        self._last_seen: Optional[float] = None

    def update(
        self, nudge: Optional[Tuple[float, float]], fast: bool, now: float
    ) -> Tuple[Tuple[float, float], bool]:
        """Record this tick's key (None when no nudge key arrived) and return the held nudge and fast flag."""
        if nudge is not None:
            self._nudge = nudge
            self._fast = fast
            self._last_seen = now
        elif self._last_seen is None or now - self._last_seen > self.hold_timeout:
            self.release()
        return self._nudge, self._fast

    def release(self) -> None:
        self._nudge = (0.0, 0.0)
        self._fast = False
        self._last_seen = None


class MappingSession:
    """Interactive editing of one surface's mapping.

    Owns the handle model, the active mapping mode and the interactive state.
    The rendering side reads ``homography`` (or ``matrix4x4``) and
    ``snapshot()`` after each ``tick``.
    """

    def __init__(
        self,
        surface_id: str,
        display_index: int = 0,
        aspect_ratio: float = 1.0,
        mode: MappingMode = MappingMode.CORNERS,
        magnetic_radius: float = DEFAULT_MAGNETIC_RADIUS,
        controls: Optional[ControlsConfig] = None,
        store: Optional[MappingStore] = None,
        ui: Optional[HandleStyle] = None,
    ) -> None:
        self.surface_id = surface_id
        self.display_index = display_index
        self._aspect_ratio = float(aspect_ratio)
        self._mode = MappingMode(mode)
        self._controls = controls or ControlsConfig()
        self._store = store
        self.ui = ui
        self.handles = HandleModel(magnetic_radius=magnetic_radius)

        self.interactive = False
        self.following_pointer = False
        self.show_test_pattern = False

        self._cache_key: Optional[bytes] = None
        self._homography = np.eye(3, dtype=np.float64)

        self.reset()
        self.load()
        logger.info(f"Mapping session for {surface_id} ready ({self._mode.value} mode)")

    @classmethod
    def from_config(
        cls,
        surface: SurfaceConfig,
        controls: Optional[ControlsConfig] = None,
        store: Optional[MappingStore] = None,
    ) -> "MappingSession":
        return cls(
            surface_id=surface.id,
            display_index=surface.display_index,
            aspect_ratio=surface.aspect_ratio,
            mode=surface.mapping_mode,
            magnetic_radius=surface.magnetic_radius,
            controls=controls,
            store=store,
        )

    @property
    def mode(self) -> MappingMode:
        return self._mode

    @property
    def aspect_ratio(self) -> float:
        return self._aspect_ratio

    def set_mode(self, mode: MappingMode | str) -> None:
        """Switch the invariant sources. Any edit of the targets is discarded."""
        mode = MappingMode(mode)
        if mode is self._mode:
            return
        self._mode = mode
        logger.info(f"{self.surface_id}: switched to {mode.value} mode")
        self.reset()

    def set_aspect_ratio(self, aspect_ratio: float, reset: bool = False) -> None:
        """Record a new aspect ratio; Circle sources are only re-derived when ``reset`` is set."""
        self._aspect_ratio = float(aspect_ratio)
        if reset:
            self.reset()

    def reset(self) -> None:
        """Reinitialize sources for the current mode and put every target back on its source."""
        self.handles.set_source_set(invariant_sources(self._mode, self._aspect_ratio))
        self.following_pointer = False

    # Persistence

    def to_record(self) -> MappingRecord:
        return MappingRecord.from_arrays(
            surface_id=self.surface_id,
            display_index=self.display_index,
            mapping_mode=self._mode,
            sources=self.handles.source_positions(),
            targets=self.handles.target_positions(),
            ui=self.ui,
        )

    def save(self) -> bool:
        if self._store is None:
            return False
        try:
            self._store.save(self.to_record())
        except OSError as exc:
            logger.error(f"Could not save mapping for {self.surface_id}: {exc}")
            return False
        return True

    def load(self) -> bool:
        """Restore the last saved mapping. Keeps the current state when there is none."""
        if self._store is None:
            return False
        record = self._store.load(self.surface_id)
        if record is None:
            return False
        self._mode = record.mapping_mode
        self.handles.set_source_set(record.source_array())
        self.handles.set_target_positions(record.target_array())
        if record.ui is not None:
            self.ui = record.ui
        return True

    # Commands

    def toggle_interactive(self) -> None:
        if self.interactive:
            self.following_pointer = False
            self.save()
        self.interactive = not self.interactive
        logger.info(f"{self.surface_id}: interactive mode {'on' if self.interactive else 'off'}")

    def exit_without_saving(self) -> None:
        self.handles.select_none()
        self.following_pointer = False
        self.interactive = False
        self.load()

    def next_handle(self) -> None:
        self._cycle_handle(1)

    def previous_handle(self) -> None:
        self._cycle_handle(-1)

    def toggle_select(self, index: int) -> None:
        """Select handle ``index`` (1-5), or deselect it if it is already current."""
        if self.handles.current == ALL_HANDLES[index - 1]:
            self.handles.select_none()
        else:
            self.handles.select_by_index(index)

    def _cycle_handle(self, step: int) -> None:
        current = self.handles.current
        if current in ALL_HANDLES:
            position = ALL_HANDLES.index(current)
        else:
            # From no selection, forward starts at the first target and backward at the center.
            position = -1 if step > 0 else len(ALL_HANDLES)
        position = (position + step) % len(ALL_HANDLES)
        self.handles.select_by_index(position + 1)

    def _apply_command(self, command: Command) -> None:
        if command is Command.TOGGLE_INTERACTIVE:
            self.toggle_interactive()
            return
        if not self.interactive:
            return
        if command is Command.RESET:
            self.reset()
        elif command is Command.TOGGLE_TEST_PATTERN:
            self.show_test_pattern = not self.show_test_pattern
        elif command is Command.EXIT_WITHOUT_SAVING:
            self.exit_without_saving()
        elif command is Command.NEXT_HANDLE:
            self.next_handle()
        elif command is Command.PREVIOUS_HANDLE:
            self.previous_handle()
        elif command in _SELECT_COMMANDS:
            self.toggle_select(_SELECT_COMMANDS[command])

    # Tick

    def tick(self, event: InputEvent) -> np.ndarray:
        """Apply one tick of operator input and return the current homography."""
        for command in Command:
            if command in event.commands:
                self._apply_command(command)
        if self.interactive:
            self._apply_pointer(event)
        return self.homography

    def _apply_pointer(self, event: InputEvent) -> None:
        if not event.pointer_on_surface:
            self.handles.select_none()
            self.following_pointer = False
            return

        if event.pressed and not self.following_pointer and event.pointer is not None:
            self.following_pointer = True
            self.handles.select_closest(event.pointer)
        if event.released and self.following_pointer:
            self.following_pointer = False

        current = self.handles.current
        if current.is_none:
            return

        if self.following_pointer:
            if event.pointer is None:
                return
            position = np.asarray(event.pointer, dtype=np.float64)
            if self._controls.clamp_pointer:
                position = np.clip(position, -1.0, 1.0)
            self.handles.set_position(current, position)
            return

        delta = self._nudge_delta(event)
        if np.any(delta):
            self.handles.set_position(current, self.handles.position_of(current) + delta)

    def _nudge_delta(self, event: InputEvent) -> np.ndarray:
        x, y = event.nudge
        delta = np.array([x, y * self._aspect_ratio], dtype=np.float64) * self._controls.nudge_speed
        if event.fast:
            delta *= self._controls.fast_multiplier
        elif event.slow:
            delta *= self._controls.slow_multiplier
        return delta * event.dt

    # Outputs

    @property
    def homography(self) -> np.ndarray:
        sources = self.handles.source_positions()
        targets = self.handles.target_positions()
        key = sources.tobytes() + targets.tobytes()
        if key != self._cache_key:
            try:
                self._homography = compute_homography(sources, targets)
            except DegenerateInputError as exc:
                logger.warning(f"{self.surface_id}: keeping previous homography ({exc})")
            self._cache_key = key
        return self._homography.copy()

    @property
    def matrix4x4(self) -> np.ndarray:
        return to_matrix4x4(self.homography)

    def snapshot(self) -> HandleSnapshot:
        return self.handles.snapshot()
