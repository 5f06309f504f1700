"""
Startup configuration of the localization front-end.

Configurations are plain YAML files, e.g.

    robot_ids: [1, 2, 5]          # the last id is the self robot
    static_positions:
      1: [0.0, 0.0, 0.0]
      2: [4.0, 0.0, 0.0]
    max_iterations: 30
    robot_max_velocity: 1.0
    output_prefix: /tmp/trajectory

`robot_positions` (a flat x, y, z list for every robot but the last) is
accepted in place of `static_positions`.
"""
import logging

import yaml
from attrs import define, field, validators, fields
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .types.enums import CovariancePolicy

logger = logging.getLogger(__name__)


def _to_positions(value) -> Dict[int, Tuple[float, float, float]]:
    positions = {}
    for robot_id, position in dict(value).items():
        position = tuple(float(x) for x in position)
        if len(position) != 3:
            raise ValueError(f"Position of robot {robot_id} must have 3 elements, got {len(position)}")
        positions[int(robot_id)] = position
    return positions


def _to_policy(value) -> CovariancePolicy:
    if isinstance(value, CovariancePolicy):
        return value
    return CovariancePolicy[str(value).upper()]


def _positive(instance, attribute, value):
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


@define
class LocalizationConfig:
    """
    All parameters read at construction of a LocalizationManager.
    """

    robot_ids: List[int] = field(
        converter=lambda ids: [int(i) for i in ids],
        metadata={"description": "All robot ids; the last one is the self robot"},
    )
    static_positions: Dict[int, Tuple[float, float, float]] = field(
        factory=dict,
        converter=_to_positions,
        metadata={"description": "Known positions of the static robots"},
    )
    max_iterations: int = field(default=30, converter=int, validator=_positive)
    robot_max_velocity: float = field(default=1.0, converter=float, validator=_positive)
    output_prefix: Optional[str] = field(
        default=None,
        validator=validators.optional(validators.instance_of(str)),
        metadata={"description": "Trajectory file prefix, no file is written if None"},
    )
    start_time: float = field(
        default=0.0,
        converter=float,
        metadata={"description": "Timestamp of the provisioning vertices"},
    )
    gravity: float = field(default=9.8, converter=float)
    huber_threshold: Optional[float] = field(
        default=1.0,
        converter=lambda v: None if v is None else float(v),
        validator=validators.optional(_positive),
    )
    prior_information: float = field(default=1e8, converter=float, validator=_positive)
    min_variance: float = field(default=1e-9, converter=float, validator=_positive)
    translation_variance_floor: float = field(default=1e-4, converter=float, validator=_positive)
    gauge_prior_variance: float = field(default=1e-6, converter=float, validator=_positive)
    velocity_warmup_samples: int = field(default=2, converter=int, validator=validators.ge(1))
    motion_warmup_samples: int = field(default=10, converter=int, validator=validators.ge(0))
    covariance_policy: CovariancePolicy = field(default=CovariancePolicy.CLAMP, converter=_to_policy)

    def __attrs_post_init__(self):
        if not self.robot_ids:
            raise ValueError("robot_ids must not be empty")
        if len(set(self.robot_ids)) != len(self.robot_ids):
            raise ValueError(f"robot_ids must be unique, got {self.robot_ids}")
        missing = [i for i in self.static_ids if i not in self.static_positions]
        if missing:
            raise ValueError(f"No position configured for static robots {missing}")
        unknown = [i for i in self.static_positions if i not in self.robot_ids]
        if unknown:
            raise ValueError(f"Positions configured for unknown robots {unknown}")
        if self.self_id in self.static_positions:
            raise ValueError(f"The self robot {self.self_id} cannot be static")

    @property
    def self_id(self) -> int:
        return self.robot_ids[-1]

    @property
    def static_ids(self) -> List[int]:
        return self.robot_ids[:-1]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalizationConfig":
        """
        Builds a configuration from a parsed YAML mapping.

        Raises:
            ConfigurationError: a required key is missing, a key is unknown or a
                value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
        data = dict(data)

        if "robot_positions" in data:
            if "static_positions" in data:
                raise ConfigurationError("Give either robot_positions or static_positions, not both")
            flat = list(data.pop("robot_positions"))
            ids = list(data.get("robot_ids", []))[:-1]
            if len(flat) != 3 * len(ids):
                raise ConfigurationError(
                    f"robot_positions needs 3 values for each of the {len(ids)} static robots, got {len(flat)}"
                )
            data["static_positions"] = {i: flat[3 * n:3 * n + 3] for n, i in enumerate(ids)}

        known = {a.name for a in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        if "robot_ids" not in data:
            raise ConfigurationError("Missing required configuration key: robot_ids")

        try:
            return cls(**data)
        except (TypeError, ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: str) -> LocalizationConfig:
    """
    Reads a LocalizationConfig from a YAML file.

    Raises:
        ConfigurationError: the file cannot be read or does not hold a valid configuration
    """
    try:
        with open(path, "r") as yaml_file:
            data = yaml.safe_load(yaml_file)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read configuration {path}: {e}") from e

    config = LocalizationConfig.from_dict(data)
    logger.info(f"Loaded configuration from {path}: self={config.self_id}, static={config.static_ids}")
    return config
