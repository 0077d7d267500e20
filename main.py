"""
AnonSnap face finding CLI entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire together
    the face finder and I/O handlers, and run over every input image.

Usage:
    python main.py --source photo.jpg                       # Single image
    python main.py --source photos/ --output-mode save_image,save_json
    python main.py --source photo.jpg --aggressive          # Hunt for missed faces
    python main.py --config my_config.yaml

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import dataclasses
import logging
import sys
import time

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

from anonsnap.config import AppConfig, load_config, _validate
from anonsnap.detector import FaceFinder
from anonsnap.generator import DetectorUnavailableError
from anonsnap.input_handler import InputHandler
from anonsnap.output_handler import OutputHandler


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="AnonSnap — find faces in still images",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--source",
        type=str,
        help="Input source: path to an image file or a directory of images.",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--aggressive",
        action="store_true",
        help="Use relaxed detection knobs to recover missed faces.",
    )
    parser.add_argument(
        "--profile",
        type=str,
        choices=["auto", "standard", "constrained"],
        help="Device profile. Overrides config.",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["cpu", "opencl", "cuda"],
        help="Inference backend. Overrides config.",
    )
    parser.add_argument(
        "--min-box-size",
        type=float,
        help="Minimum face width/height in pixels. Overrides config.",
    )
    parser.add_argument(
        "--output-mode",
        type=str,
        help="Output mode(s). Use comma-separated values for multiple outputs: "
             "display, save_image, save_json, save_csv. "
             "Example: 'save_image,save_json'. Overrides config.",
    )
    parser.add_argument(
        "--output-path",
        type=str,
        help="Directory for output artifacts. Overrides config.",
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of ``config`` with command-line overrides applied."""
    replace = dataclasses.replace

    if args.source is not None:
        config = replace(config, input=replace(config.input, source=args.source))

    if args.profile is not None:
        config = replace(config, device=replace(config.device, profile=args.profile))

    if args.backend is not None:
        config = replace(config, device=replace(config.device, backend=args.backend))

    if args.min_box_size is not None:
        config = replace(
            config, detection=replace(config.detection, min_box_size=args.min_box_size)
        )

    if args.aggressive:
        config = replace(config, detection=config.detection.aggressive())

    if args.output_mode is not None:
        config = replace(config, output=replace(config.output, mode=args.output_mode))

    if args.output_path is not None:
        config = replace(config, output=replace(config.output, save_path=args.output_path))

    _validate(config)
    return config


def main(argv=None) -> int:
    """Main execution loop."""
    args = parse_args(argv)

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = apply_cli_overrides(load_config(args.config), args)
        logger.info("Configuration active for this run.")
    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    # 2. Initialize Components
    try:
        finder = FaceFinder(config)
        input_handler = InputHandler(config.input.source)
        output_handler = OutputHandler(config)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error("Initialization failed: %s", e)
        return 1

    # 3. Processing Loop
    image_count = 0
    face_count = 0
    start_time = time.perf_counter()

    try:
        for name, image in input_handler:
            faces = finder.find_faces(image)
            image_count += 1
            face_count += len(faces)
            logger.info("%s: %d faces", name, len(faces))

            if not output_handler.process_image(name, image, faces):
                logger.info("Stopping per user request.")
                break

    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    except DetectorUnavailableError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.exception("Runtime error during processing: %s", e)
        return 1
    finally:
        # 4. Cleanup
        elapsed = time.perf_counter() - start_time
        output_handler.finalize()

        logger.info(
            "Processing finished. Images: %d. Faces: %d. Elapsed: %.2fs.",
            image_count, face_count, elapsed,
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
