#!/usr/bin/env python3
"""
Replays a recorded measurement log through a LocalizationManager.

The log holds one JSON object per line, e.g.

    {"type": "pose", "timestamp": 1.0, "frame_id": "map", "position": [1, 0, 0], "orientation": [0, 0, 0, 1]}
    {"type": "range", "timestamp": 2.0, "frame_id": "map", "requester_id": 5, "responder_id": 1,
     "distance": 3.0, "distance_error": 0.1}
    {"type": "imu", "timestamp": 2.1, "frame_id": "imu", "orientation": [0, 0, 0, 1],
     "angular_velocity": [0, 0, 0], "linear_acceleration": [0, 0, 9.8], "range": {...}}

The fields of each event are those of the matching measurement type.

Usage:
    python -m coop_localization.replay --config cfg.yaml --events log.jsonl
"""
import argparse
import json
import logging
import sys
from typing import Dict, Iterator, Tuple

from .config import load_config
from .errors import ConfigurationError, LocalizationError
from .manager import LocalizationManager
from .types.measurements import (
    ImuMeasurement,
    PoseMeasurement,
    RangeMeasurement,
    TwistMeasurement,
)

logger = logging.getLogger(__name__)

MEASUREMENT_TYPES = {
    "pose": PoseMeasurement,
    "twist": TwistMeasurement,
    "range": RangeMeasurement,
    "imu": ImuMeasurement,
}


def parse_event(event: Dict):
    """
    Builds the measurement described by one log entry.

    Returns:
        (type name, measurement, paired range or None)

    Raises:
        ValueError: the entry has an unknown type or invalid fields
    """
    event = dict(event)
    kind = event.pop("type", None)
    if kind not in MEASUREMENT_TYPES:
        raise ValueError(f"Unknown event type: {kind}")

    try:
        paired_range = None
        if kind == "imu" and "range" in event:
            paired_range = RangeMeasurement(**event.pop("range"))
        return kind, MEASUREMENT_TYPES[kind](**event), paired_range
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid {kind} event: {e}") from e


def read_events(path: str) -> Iterator[Tuple[int, Dict]]:
    with open(path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line_number, json.loads(line)


def replay(manager: LocalizationManager, path: str) -> Dict[str, int]:
    """
    Feeds every event of a log to the manager.

    Returns:
        counts of accepted, dropped and malformed events
    """
    counts = {"accepted": 0, "dropped": 0, "malformed": 0}
    for line_number, event in read_events(path):
        try:
            kind, measurement, paired_range = parse_event(event)
        except ValueError as e:
            logger.error(f"{path}:{line_number}: {e}")
            counts["malformed"] += 1
            continue

        if kind == "pose":
            accepted = manager.add_pose_measurement(measurement)
        elif kind == "twist":
            accepted = manager.add_twist_measurement(measurement)
        elif kind == "range":
            accepted = manager.add_range_measurement(measurement)
        else:
            accepted = manager.add_imu_measurement(measurement, paired_range)

        counts["accepted" if accepted else "dropped"] += 1
    return counts


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="replay a measurement log through the localization front-end")
    ap.add_argument("--config", required=True, help="Path to yaml configuration")
    ap.add_argument("--events", required=True, help="Path to JSON-lines measurement log")
    ap.add_argument("--output-prefix", default=None, help="Trajectory file prefix (overrides the configuration)")
    ap.add_argument("--log", default="info", help="Log level")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    if args.output_prefix is not None:
        config.output_prefix = args.output_prefix

    try:
        manager = LocalizationManager(config)
        counts = replay(manager, args.events)
    except (LocalizationError, OSError, json.JSONDecodeError) as e:
        logger.error(f"Replay failed: {e}")
        return 1

    logger.info(
        f"Replayed {counts['accepted']} events, dropped {counts['dropped']}, malformed {counts['malformed']}"
    )
    if manager.last_published is not None:
        logger.info(f"Final self pose: {manager.last_published.position}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
