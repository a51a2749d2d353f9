"""Application entry point: live eye-contact preview from the default webcam.

Keys: ``r`` resets the statistics, ``q`` / ``Esc`` quits.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on the path when running as `python app/main.py`
_ROOT = Path(__file__).parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

# Change working directory to project root so relative paths (config.json,
# assets/) resolve correctly regardless of where the script is invoked from.
import os
os.chdir(_ROOT)

import cv2

from app.config import Config
from app.controller import Controller
from vision.camera import Camera
from vision.overlay import draw_faces, draw_stats_panel

_WINDOW = "Eye Contact"
_DISPLAY_INTERVAL_S = 1 / 30


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


async def run(config: Config) -> int:
    logger = logging.getLogger(__name__)
    camera = Camera(config.camera_index)
    try:
        camera.start()
    except RuntimeError as exc:
        logger.error("%s Check that the webcam is connected and not in use.", exc)
        return 1

    controller = Controller(
        config,
        on_eye_contact_change=lambda on: logger.info("Eye contact %s", "gained" if on else "lost"),
    )
    try:
        controller.start(camera)
    except RuntimeError as exc:
        logger.error("%s", exc)
        camera.stop()
        return 1

    try:
        while True:
            frame = camera.read()
            if frame is not None:
                stats = controller.stats
                draw_faces(
                    frame.image,
                    controller.last_result.faces,
                    (camera.width, camera.height),
                    eye_contact_percentage=stats.eye_contact_percentage,
                    show_head_pose=config.show_head_pose,
                )
                draw_stats_panel(frame.image, stats)
                cv2.imshow(_WINDOW, frame.image)

            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), 27):
                break
            if key == ord("r"):
                controller.reset_stats()
            await asyncio.sleep(_DISPLAY_INTERVAL_S)
    finally:
        controller.stop()
        camera.stop()
        cv2.destroyAllWindows()

    logger.info(
        "Session summary: %d frames, %.1f%% eye contact overall.",
        controller.stats.total_frames_processed,
        controller.stats.lifetime_eye_contact_percentage,
    )
    return 0


def main() -> None:
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Eye contact detector – starting up.")

    config = Config.load()
    ret = asyncio.run(run(config))

    logger.info("Exiting with code %d.", ret)
    sys.exit(ret)


if __name__ == "__main__":
    main()
