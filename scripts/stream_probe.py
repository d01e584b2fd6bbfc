#!/usr/bin/env python3
"""
Stream Probe Script
===================

Standalone script to check a running MJPEG endpoint.

This script:
    1. Connects to the stream URL
    2. Reads frames until the stream ends, a frame limit or a duration
    3. Logs each frame with its size and inter-arrival time
    4. Reports a final summary

Prerequisites:
    - The server must be running (python -m mjpeg_stream.main)
    - Install the package: pip install -e .

Usage:
    python scripts/stream_probe.py --url http://localhost:8080/animation
    python scripts/stream_probe.py --url http://localhost:8080/stream --frames 20
"""

import argparse
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mjpeg_stream.stream import ClientDisconnectedError, MJPEGStreamClient
from mjpeg_stream.stream.encoder import ImageEncodeError, mean_color


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def run_probe(url: str, max_frames: int, duration: float, timeout: float) -> dict:
    """
    Read frames from the stream and log what arrives.

    Args:
        url: Stream URL
        max_frames: Stop after this many frames (0 = no limit)
        duration: Stop after this many seconds (0 = no limit)
        timeout: Connect/read timeout in seconds

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info(f"Probing {url}")
    logger.info("=" * 60)

    start_time = time.monotonic()
    last_arrival = start_time
    broken = False

    client = MJPEGStreamClient(url, timeout=timeout)
    try:
        client.connect()
        logger.info(f"Boundary: {client.boundary}")

        for frame in client.frames(limit=max_frames or None):
            now = time.monotonic()
            try:
                color = mean_color(frame.payload)
            except ImageEncodeError:
                color = None

            logger.info(
                f"Frame {client.metrics.frames_received}: {frame.mime_type}, "
                f"{frame.length} bytes, +{(now - last_arrival) * 1000:.0f}ms, "
                f"mean RGB={color}"
            )
            last_arrival = now

            if duration and now - start_time >= duration:
                logger.info(f"Probe duration ({duration}s) reached")
                break

    except ClientDisconnectedError as e:
        broken = True
        logger.warning(f"Stream broken: {e}")
    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
    finally:
        client.close()

    total_time = time.monotonic() - start_time
    summary = {
        "duration": total_time,
        "broken": broken,
        **client.metrics.to_dict(),
    }

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {summary['frames_received']}")
    logger.info(f"Bytes received: {summary['bytes_received']}")
    logger.info(f"Average FPS: {summary['fps']:.2f}")
    logger.info("=" * 60)

    return summary


def main():
    parser = argparse.ArgumentParser(description="Read and report an MJPEG stream")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("MJPEG_PROBE_URL", "http://localhost:8080/animation"),
        help="Stream URL",
    )
    parser.add_argument(
        "--frames",
        type=int,
        default=0,
        help="Stop after this many frames (default: until the stream ends)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Stop after this many seconds (default: no limit)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Connect/read timeout in seconds (default: 5)",
    )

    args = parser.parse_args()

    result = run_probe(
        url=args.url,
        max_frames=args.frames,
        duration=args.duration,
        timeout=args.timeout,
    )

    sys.exit(0 if result["frames_received"] > 0 and not result["broken"] else 1)


if __name__ == "__main__":
    main()
