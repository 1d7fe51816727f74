"""Stablecoin-pair layered market maker."""

from pathlib import Path
from typing import Union

import yaml

from scmaker.errors import ConfigError

__version__ = "0.1.0"


def load_config(path: Union[str, Path, None] = None) -> dict:
    """Load and parse the YAML configuration.

    Parameters
    ----------
    path
        Path to a YAML file. If *None*, defaults to ``config.yaml`` in the
        package directory.

    Returns
    -------
    dict
        Parsed configuration dictionary with ``logging``/``state`` defaults
        filled in.
    """
    path = Path(path) if path else Path(__file__).with_name("config.yaml")
    with path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise ConfigError(str(path), "configuration must be a mapping")
    if not isinstance(config.get("strategy"), dict):
        raise ConfigError("strategy", "missing strategy section")

    config.setdefault("logging", {})
    config["logging"].setdefault("level", "INFO")
    config["logging"].setdefault("path", None)
    config.setdefault("state", {})
    config["state"].setdefault("path", None)
    config.setdefault("metrics", {})
    config["metrics"].setdefault("path", None)
    return config
