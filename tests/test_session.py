"""Tests for the tick-driven mapping session."""

from __future__ import annotations

import numpy as np
import pytest

from perspective_mapper.calibration import MappingStore
from perspective_mapper.config import ControlsConfig, SurfaceConfig
from perspective_mapper.geometry import compute_homography
from perspective_mapper.mapping import CENTER_HANDLE, NO_HANDLE, Handle, MappingMode, circle_sources, corner_sources
from perspective_mapper.mapping.session import Command, HeldNudge, InputEvent, MappingSession


def commands(*items: Command) -> InputEvent:
    return InputEvent(commands=frozenset(items))


@pytest.fixture
def session(store: MappingStore) -> MappingSession:
    session = MappingSession("display0", aspect_ratio=2.0, store=store)
    session.tick(commands(Command.TOGGLE_INTERACTIVE))
    return session


def test_new_session_starts_on_invariant_sources() -> None:
    session = MappingSession("display0")
    np.testing.assert_array_equal(session.handles.target_positions(), corner_sources())
    np.testing.assert_allclose(session.homography, np.eye(3), atol=1e-12)
    assert not session.interactive


def test_from_config_uses_surface_settings() -> None:
    surface = SurfaceConfig(id="wall", display_index=1, resolution=[1600, 800], mapping_mode="circle", magnetic_radius=0.3)
    session = MappingSession.from_config(surface)

    assert session.display_index == 1
    assert session.mode is MappingMode.CIRCLE
    assert session.handles.magnetic_radius == pytest.approx(0.3)
    np.testing.assert_allclose(session.handles.source_positions(), circle_sources(2.0))


def test_input_is_ignored_until_interactive(store: MappingStore) -> None:
    session = MappingSession("display0", store=store)
    session.tick(InputEvent(pointer=(-0.95, 0.95), pressed=True))
    session.tick(InputEvent(pointer=(-0.8, 0.8)))

    assert session.handles.current == NO_HANDLE
    np.testing.assert_array_equal(session.handles.target_positions(), corner_sources())


def test_pointer_drag_moves_closest_target(session: MappingSession) -> None:
    session.tick(InputEvent(pointer=(-0.95, 0.95), pressed=True))
    assert session.following_pointer
    assert session.handles.current == Handle.target(0)

    homography = session.tick(InputEvent(pointer=(-0.7, 0.8)))
    np.testing.assert_allclose(session.handles.position_of(Handle.target(0)), [-0.7, 0.8])

    targets = session.handles.target_positions()
    np.testing.assert_allclose(homography, compute_homography(corner_sources(), targets))

    session.tick(InputEvent(pointer=(-0.7, 0.8), released=True))
    assert not session.following_pointer


def test_pointer_is_clamped_to_viewport(session: MappingSession) -> None:
    session.tick(InputEvent(pointer=(-0.95, 0.95), pressed=True))
    session.tick(InputEvent(pointer=(-1.7, 1.4)))
    np.testing.assert_allclose(session.handles.position_of(Handle.target(0)), [-1.0, 1.0])


def test_press_far_from_handles_selects_nothing(session: MappingSession) -> None:
    session.tick(InputEvent(pointer=(0.5, 0.5), pressed=True))
    session.tick(InputEvent(pointer=(0.6, 0.6)))

    assert session.handles.current == NO_HANDLE
    np.testing.assert_array_equal(session.handles.target_positions(), corner_sources())


def test_pointer_off_surface_clears_selection(session: MappingSession) -> None:
    session.tick(commands(Command.SELECT_5))
    session.tick(InputEvent(pointer_on_surface=False))
    assert session.handles.current == NO_HANDLE


def test_release_off_surface_ends_the_drag(session: MappingSession) -> None:
    session.tick(InputEvent(pointer=(-0.95, 0.95), pressed=True))
    session.tick(InputEvent(pointer_on_surface=False, released=True))
    assert not session.following_pointer

    session.tick(InputEvent(pointer=(0.95, -0.95), pressed=True))
    assert session.handles.current == Handle.target(2)


def test_keyboard_nudge_scales_with_aspect_and_modifiers(session: MappingSession) -> None:
    session.tick(commands(Command.SELECT_5))

    session.tick(InputEvent(nudge=(1.0, 1.0), dt=0.5))
    # 0.1 * dt, vertical axis scaled by the aspect ratio.
    np.testing.assert_allclose(session.handles.center_position(), [0.05, 0.1], atol=1e-12)

    session.tick(InputEvent(nudge=(-1.0, 0.0), dt=0.5, fast=True))
    np.testing.assert_allclose(session.handles.center_position(), [-0.45, 0.1], atol=1e-12)

    session.tick(InputEvent(nudge=(1.0, 0.0), dt=0.5, slow=True))
    np.testing.assert_allclose(session.handles.center_position(), [-0.44, 0.1], atol=1e-12)


def test_custom_controls_change_nudge_speed(store: MappingStore) -> None:
    session = MappingSession("display0", controls=ControlsConfig(nudge_speed=1.0), store=store)
    session.tick(commands(Command.TOGGLE_INTERACTIVE, Command.SELECT_1))
    session.tick(InputEvent(nudge=(1.0, 0.0), dt=0.1))
    np.testing.assert_allclose(session.handles.position_of(Handle.target(0)), [-0.9, 1.0])


def test_select_commands_toggle(session: MappingSession) -> None:
    session.tick(commands(Command.SELECT_2))
    assert session.handles.current == Handle.target(1)
    session.tick(commands(Command.SELECT_2))
    assert session.handles.current == NO_HANDLE


def test_handle_cycling_wraps(session: MappingSession) -> None:
    session.tick(commands(Command.NEXT_HANDLE))
    assert session.handles.current == Handle.target(0)
    for _ in range(4):
        session.next_handle()
    assert session.handles.current == CENTER_HANDLE
    session.next_handle()
    assert session.handles.current == Handle.target(0)

    session.handles.select_none()
    session.tick(commands(Command.PREVIOUS_HANDLE))
    assert session.handles.current == CENTER_HANDLE
    session.previous_handle()
    assert session.handles.current == Handle.target(3)


def test_mode_switch_resets_targets(session: MappingSession) -> None:
    session.handles.set_position(Handle.target(0), (-0.8, 0.9))
    session.set_mode(MappingMode.CIRCLE)

    expected = circle_sources(2.0)
    np.testing.assert_allclose(session.handles.source_positions(), expected)
    np.testing.assert_allclose(session.handles.target_positions(), expected)


def test_aspect_ratio_change_needs_explicit_reset(session: MappingSession) -> None:
    session.set_mode("circle")
    session.set_aspect_ratio(0.5)
    np.testing.assert_allclose(session.handles.source_positions(), circle_sources(2.0))

    session.set_aspect_ratio(0.5, reset=True)
    np.testing.assert_allclose(session.handles.source_positions(), circle_sources(0.5))


def test_reset_command_discards_edits_and_drag(session: MappingSession) -> None:
    session.tick(InputEvent(pointer=(-0.95, 0.95), pressed=True))
    session.tick(InputEvent(pointer=(-0.7, 0.8)))
    session.tick(commands(Command.RESET))

    assert not session.following_pointer
    np.testing.assert_array_equal(session.handles.target_positions(), corner_sources())


def test_leaving_interactive_mode_saves(session: MappingSession, store: MappingStore) -> None:
    session.handles.set_position(Handle.target(2), (0.8, -0.9))
    session.tick(commands(Command.TOGGLE_INTERACTIVE))

    assert not session.interactive
    record = store.load("display0")
    assert record is not None
    np.testing.assert_allclose(record.target_array(), session.handles.target_positions())


def test_new_session_restores_saved_mapping(session: MappingSession, store: MappingStore) -> None:
    session.set_mode(MappingMode.CIRCLE)
    session.handles.set_position(CENTER_HANDLE, (0.1, 0.2))
    assert session.save()

    restored = MappingSession("display0", aspect_ratio=2.0, store=store)
    assert restored.mode is MappingMode.CIRCLE
    np.testing.assert_allclose(restored.handles.target_positions(), session.handles.target_positions())
    np.testing.assert_allclose(restored.handles.source_positions(), circle_sources(2.0))


def test_exit_without_saving_reloads_last_saved_state(session: MappingSession) -> None:
    session.handles.set_position(Handle.target(0), (-0.8, 0.9))
    session.save()
    saved = session.handles.target_positions()

    session.tick(commands(Command.SELECT_3))
    session.handles.set_position(Handle.target(2), (0.7, -0.7))
    session.tick(commands(Command.EXIT_WITHOUT_SAVING))

    assert not session.interactive
    assert session.handles.current == NO_HANDLE
    np.testing.assert_allclose(session.handles.target_positions(), saved)


def test_missing_record_keeps_defaults(store: MappingStore) -> None:
    session = MappingSession("unknown", store=store)
    assert session.load() is False
    np.testing.assert_array_equal(session.handles.target_positions(), corner_sources())


def test_save_failure_is_not_raised(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    session = MappingSession("display0", store=MappingStore(blocker / "mappings"))

    assert session.save() is False


def test_test_pattern_toggle_requires_interactive_mode(store: MappingStore) -> None:
    session = MappingSession("display0", store=store)
    session.tick(commands(Command.TOGGLE_TEST_PATTERN))
    assert not session.show_test_pattern

    session.tick(commands(Command.TOGGLE_INTERACTIVE, Command.TOGGLE_TEST_PATTERN))
    assert session.show_test_pattern


def test_homography_is_cached_until_handles_change(session: MappingSession) -> None:
    first = session.homography
    assert session._cache_key is not None
    key = session._cache_key

    session.homography
    assert session._cache_key == key

    session.handles.set_position(CENTER_HANDLE, (0.1, 0.0))
    moved = session.homography
    assert session._cache_key != key
    assert not np.allclose(first, moved)


def test_matrix4x4_carrier(session: MappingSession) -> None:
    carrier = session.matrix4x4
    assert carrier.shape == (4, 4)
    np.testing.assert_allclose(carrier, np.diag([1.0, 1.0, 0.0, 1.0]), atol=1e-12)


def test_held_nudge_persists_between_key_repeats() -> None:
    held = HeldNudge(hold_timeout=0.25)
    assert held.update(None, False, now=0.0) == ((0.0, 0.0), False)

    assert held.update((1.0, 0.0), True, now=1.0) == ((1.0, 0.0), True)
    # No repeat this tick but still within the hold window.
    assert held.update(None, False, now=1.2) == ((1.0, 0.0), True)
    assert held.update(None, False, now=1.3) == ((0.0, 0.0), False)


def test_held_nudge_drives_continuous_motion(session: MappingSession) -> None:
    session.tick(commands(Command.SELECT_5))
    held = HeldNudge()

    nudge, fast = held.update((1.0, 0.0), False, now=0.0)
    for step in range(10):
        session.tick(InputEvent(nudge=nudge, fast=fast, dt=0.01))
        nudge, fast = held.update(None, False, now=0.01 * (step + 1))

    # 0.1 per second held for a tenth of a second.
    np.testing.assert_allclose(session.handles.center_position(), [0.01, 0.0], atol=1e-12)
