"""Interactive perspective mapping in an OpenCV window.

Drag the handles with the mouse to warp the output surface.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Optional, Set, Tuple

import cv2
import numpy as np
from loguru import logger

from perspective_mapper.calibration import MappingStore
from perspective_mapper.config import SurfaceConfig, load_config
from perspective_mapper.mapping import HandleKind, HandleSnapshot, MappingMode
from perspective_mapper.mapping.session import Command, HeldNudge, InputEvent, MappingSession
from perspective_mapper.projection import homography_to_pixels, ndc_to_pixel, pixel_to_ndc
from perspective_mapper.utils import configure_logging

KEY_COMMANDS = {
    ord("p"): Command.TOGGLE_INTERACTIVE,
    ord("r"): Command.RESET,
    ord("o"): Command.TOGGLE_TEST_PATTERN,
    27: Command.EXIT_WITHOUT_SAVING,  # ESC
    9: Command.NEXT_HANDLE,  # Tab
    ord("`"): Command.PREVIOUS_HANDLE,
    ord("1"): Command.SELECT_1,
    ord("2"): Command.SELECT_2,
    ord("3"): Command.SELECT_3,
    ord("4"): Command.SELECT_4,
    ord("5"): Command.SELECT_5,
}

# Lowercase nudges at normal speed, uppercase ten times faster.
NUDGE_KEYS = {
    ord("j"): (-1.0, 0.0),
    ord("l"): (1.0, 0.0),
    ord("i"): (0.0, 1.0),
    ord("k"): (0.0, -1.0),
}

IDLE_COLOR = (139, 139, 0)
SELECTED_COLOR = (0, 140, 255)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive four-point perspective mapping")
    parser.add_argument("--config", type=Path, required=True, help="Path to mapping YAML configuration")
    parser.add_argument("--surface-id", type=str, default=None, help="Surface ID (default: first surface)")
    parser.add_argument("--image", type=Path, help="Image to warp (default: generated grid)")
    return parser.parse_args()


class PointerState:
    """Collects mouse events between two ticks."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.position: Optional[Tuple[float, float]] = None
        self.pressed = False
        self.released = False

    def mouse_callback(self, event, x, y, flags, param) -> None:
        ndc = pixel_to_ndc([(x, y)], self.width, self.height)[0]
        self.position = (float(ndc[0]), float(ndc[1]))
        if event == cv2.EVENT_LBUTTONDOWN:
            self.pressed = True
        elif event == cv2.EVENT_LBUTTONUP:
            self.released = True

    def consume(self) -> Tuple[Optional[Tuple[float, float]], bool, bool]:
        pressed, released = self.pressed, self.released
        self.pressed = False
        self.released = False
        return self.position, pressed, released


def build_grid(width: int, height: int, square_size: int = 80) -> np.ndarray:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    for x in range(0, width, square_size):
        cv2.line(image, (x, 0), (x, height), (200, 200, 200), 1)
    for y in range(0, height, square_size):
        cv2.line(image, (0, y), (width, y), (200, 200, 200), 1)
    cv2.circle(image, (width // 2, height // 2), min(width, height) // 2, (0, 200, 0), 2)
    return image


def draw_handles(frame: np.ndarray, snapshot: HandleSnapshot, size: int = 10) -> None:
    height, width = frame.shape[:2]
    outline = ndc_to_pixel(snapshot.targets, width, height).astype(np.int32)
    cv2.polylines(frame, [outline.reshape(-1, 1, 2)], isClosed=True, color=IDLE_COLOR, thickness=1)
    for handle_kind, points in (
        (HandleKind.TARGET, snapshot.targets),
        (HandleKind.CENTER, snapshot.center.reshape(1, 2)),
    ):
        for index, (px, py) in enumerate(ndc_to_pixel(points, width, height)):
            current = snapshot.current
            selected = current.kind is handle_kind and (
                handle_kind is HandleKind.CENTER or current.index == index
            )
            color = SELECTED_COLOR if selected else IDLE_COLOR
            cv2.circle(frame, (int(px), int(py)), size, color, -1)


def run(surface: SurfaceConfig, session: MappingSession, image: np.ndarray) -> None:
    window_name = f"Surface_{surface.id}"
    width, height = surface.width, surface.height
    pointer = PointerState(width, height)
    held = HeldNudge()

    cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(window_name, width, height)
    cv2.setMouseCallback(window_name, pointer.mouse_callback)

    logger.info("Controls: P toggle editing, R reset, O test pattern, ESC discard edits, M switch mode, Q quit")
    logger.info("Tab/` cycle handles, 1-5 select, I/J/K/L nudge (uppercase for fast)")

    grid = build_grid(width, height)
    last_tick = time.perf_counter()
    try:
        while True:
            key = cv2.waitKey(15) & 0xFF
            if key == ord("q"):
                logger.info("Quit requested")
                break
            if key == ord("m"):
                next_mode = MappingMode.CIRCLE if session.mode is MappingMode.CORNERS else MappingMode.CORNERS
                session.set_mode(next_mode)

            commands: Set[Command] = set()
            if key in KEY_COMMANDS:
                commands.add(KEY_COMMANDS[key])
                held.release()
            fast = ord("A") <= key <= ord("Z")

            now = time.perf_counter()
            nudge, fast = held.update(NUDGE_KEYS.get(key + 32 if fast else key), fast, now)
            position, pressed, released = pointer.consume()
            homography = session.tick(
                InputEvent(
                    pointer=position,
                    pressed=pressed,
                    released=released,
                    nudge=nudge,
                    fast=fast,
                    dt=now - last_tick,
                    commands=frozenset(commands),
                )
            )
            last_tick = now

            source = grid if session.show_test_pattern or session.interactive else image
            warped = cv2.warpPerspective(source, homography_to_pixels(homography, width, height), (width, height))
            if session.interactive:
                draw_handles(warped, session.snapshot())
            cv2.imshow(window_name, warped)
    finally:
        session.save()
        cv2.destroyAllWindows()


def main() -> None:
    args = parse_args()
    config = load_config(args.config)
    configure_logging(config.logging)

    surface = config.surface_by_id(args.surface_id) if args.surface_id else config.surfaces[0]
    store = MappingStore(config.storage.mappings_dir)
    session = MappingSession.from_config(surface, controls=config.controls, store=store)

    if args.image:
        image = cv2.imread(str(args.image))
        if image is None:
            logger.error(f"Could not read image {args.image}")
            return
        image = cv2.resize(image, (surface.width, surface.height))
    else:
        image = build_grid(surface.width, surface.height)

    run(surface, session, image)


if __name__ == "__main__":
    main()
