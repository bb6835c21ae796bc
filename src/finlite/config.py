"""
Interpreter configuration.

Settings are read from a YAML mapping (``finlite.yaml``). Every key is
optional; anything missing keeps its default:

    tab_width: 4
    max_errors: 20
    irr_guess: 0.1
    irr_iterations: 100
    var_z_scores: {0.95: 1.65, 0.99: 2.33}
    var_default_z: 1.0
    simulation_results_name: lastSimulation
    currencies: [SEK, NOK]
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "finlite.yaml"
CONFIG_ENV_VAR = "FINLITE_CONFIG"


def _default_z_scores() -> Dict[float, float]:
    return {0.95: 1.65, 0.99: 2.33}


@dataclass
class FinLiteConfig:
    """Tunable constants for the lexer, parser and finance runtime."""
    tab_width: int = 4
    max_errors: int = 20
    irr_guess: float = 0.1
    irr_iterations: int = 100
    var_z_scores: Dict[float, float] = field(default_factory=_default_z_scores)
    var_default_z: float = 1.0
    simulation_results_name: str = "lastSimulation"
    currencies: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict) -> "FinLiteConfig":
        """Build a config from a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ConfigError(f"configuration must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

        config = cls()
        for key, value in data.items():
            setattr(config, key, value)

        try:
            config.tab_width = int(config.tab_width)
            config.max_errors = int(config.max_errors)
            config.irr_guess = float(config.irr_guess)
            config.irr_iterations = int(config.irr_iterations)
            config.var_default_z = float(config.var_default_z)
            config.var_z_scores = {float(k): float(v) for k, v in dict(config.var_z_scores).items()}
            config.currencies = [str(c).upper() for c in config.currencies]
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid configuration value: {exc}") from exc

        if config.tab_width < 1:
            raise ConfigError("tab_width must be at least 1")
        if config.irr_iterations < 0:
            raise ConfigError("irr_iterations must not be negative")
        return config


def load_config(path: Optional[Union[str, Path]] = None) -> FinLiteConfig:
    """
    Load configuration.

    Looks at ``path`` if given, then ``$FINLITE_CONFIG``, then
    ``./finlite.yaml``. Returns defaults when no file is found.

    Raises:
        ConfigError: If the file is unreadable YAML or has bad values
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            path = env_path
        elif Path(CONFIG_FILENAME).exists():
            path = CONFIG_FILENAME
        else:
            return FinLiteConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error in {config_path}: {exc}") from exc

    logger.debug("loaded configuration from %s", config_path)
    return FinLiteConfig.from_mapping(data)
