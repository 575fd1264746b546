"""Configuration loading for the classification service.

Configuration lives in a JSON file (``config/oralcheck.json`` by default;
see ``config/oralcheck.example.json``). Every section is optional and
invalid values fall back to their defaults with a warning, so a partial
file is always usable. Secrets are never stored in the file: the remote
backend names the environment variable that holds its API token.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .encoding import DEFAULT_MAX_IMAGE_BYTES

logger = logging.getLogger(__name__)

BACKEND_KINDS = ("simulator", "remote")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class SimulatorSettings:
    load_delay: float = 2.0
    infer_delay: float = 3.0
    min_confidence: float = 0.70
    max_confidence: float = 0.95
    timeout: float = 30.0
    seed: int | None = None


@dataclass
class RemoteSettings:
    endpoint: str = ""
    api_key_env: str = "ORALCHECK_API_TOKEN"
    timeout: float = 30.0
    health_url: str | None = None
    label_map: dict[str, str] = field(default_factory=dict)


@dataclass
class BackendSettings:
    kind: str = "simulator"
    simulator: SimulatorSettings = field(default_factory=SimulatorSettings)
    remote: RemoteSettings = field(default_factory=RemoteSettings)


@dataclass
class ClassificationSettings:
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    initialize_on_startup: bool = True


@dataclass
class LoggingSettings:
    level: str = "INFO"


@dataclass
class AppConfig:
    server: ServerSettings = field(default_factory=ServerSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    classification: ClassificationSettings = field(default_factory=ClassificationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        server = _section(data, "server")
        backend = _section(data, "backend")
        simulator = _section(backend, "simulator")
        remote = _section(backend, "remote")
        classification = _section(data, "classification")
        logging_section = _section(data, "logging")

        server_defaults = ServerSettings()
        sim_defaults = SimulatorSettings()
        remote_defaults = RemoteSettings()
        cls_defaults = ClassificationSettings()

        min_confidence = _float(
            simulator.get("min_confidence"), sim_defaults.min_confidence, 0.0, 1.0
        )
        max_confidence = _float(
            simulator.get("max_confidence"), sim_defaults.max_confidence, 0.0, 1.0
        )
        if min_confidence > max_confidence:
            logger.warning(
                "Simulator min_confidence=%.2f exceeds max_confidence=%.2f; using defaults",
                min_confidence,
                max_confidence,
            )
            min_confidence = sim_defaults.min_confidence
            max_confidence = sim_defaults.max_confidence

        kind = str(backend.get("kind", "simulator")).strip().lower()
        if kind not in BACKEND_KINDS:
            logger.warning("Unknown backend kind %r; falling back to simulator", kind)
            kind = "simulator"

        level = str(logging_section.get("level", "INFO")).strip().upper()
        if level not in LOG_LEVELS:
            logger.warning("Unknown log level %r; using INFO", level)
            level = "INFO"

        seed = simulator.get("seed")
        if seed is not None and not isinstance(seed, int):
            seed = None

        return cls(
            server=ServerSettings(
                host=str(server.get("host") or server_defaults.host),
                port=_int(server.get("port"), server_defaults.port, 1, 65535),
            ),
            backend=BackendSettings(
                kind=kind,
                simulator=SimulatorSettings(
                    load_delay=_float(simulator.get("load_delay"), sim_defaults.load_delay, 0.0),
                    infer_delay=_float(simulator.get("infer_delay"), sim_defaults.infer_delay, 0.0),
                    min_confidence=min_confidence,
                    max_confidence=max_confidence,
                    timeout=_float(simulator.get("timeout"), sim_defaults.timeout, 0.001),
                    seed=seed,
                ),
                remote=RemoteSettings(
                    endpoint=str(remote.get("endpoint") or ""),
                    api_key_env=str(remote.get("api_key_env") or remote_defaults.api_key_env),
                    timeout=_float(remote.get("timeout"), remote_defaults.timeout, 0.001),
                    health_url=remote.get("health_url") or None,
                    label_map=_label_map(remote.get("label_map")),
                ),
            ),
            classification=ClassificationSettings(
                max_image_bytes=_int(
                    classification.get("max_image_bytes"), cls_defaults.max_image_bytes, 1
                ),
                initialize_on_startup=bool(
                    classification.get(
                        "initialize_on_startup", cls_defaults.initialize_on_startup
                    )
                ),
            ),
            logging=LoggingSettings(level=level),
        )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _float(
    value: Any, default: float, minimum: float | None = None, maximum: float | None = None
) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid numeric config value %r; using %s", value, default)
        return default
    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        logger.warning("Config value %s out of range; using %s", number, default)
        return default
    return number


def _int(value: Any, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer config value %r; using %s", value, default)
        return default
    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        logger.warning("Config value %s out of range; using %s", number, default)
        return default
    return number


def _label_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {
        str(label): str(key)
        for label, key in value.items()
        if str(label).strip() and str(key).strip()
    }


def load_config(path: str | Path | None) -> AppConfig:
    """Load configuration from ``path``; ``None`` yields the defaults.

    Raises ``FileNotFoundError`` when an explicit path does not exist and
    ``ValueError`` when the file is not a JSON object.
    """
    if path is None:
        logger.info("No configuration file given; using defaults")
        return AppConfig()
    config_path = Path(path)
    content = config_path.read_text(encoding="utf-8")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Configuration file {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a JSON object")
    config = AppConfig.from_dict(data)
    logger.info(
        "Loaded configuration from %s backend=%s host=%s port=%d",
        config_path,
        config.backend.kind,
        config.server.host,
        config.server.port,
    )
    return config


__all__ = [
    "AppConfig",
    "BackendSettings",
    "ClassificationSettings",
    "LoggingSettings",
    "RemoteSettings",
    "ServerSettings",
    "SimulatorSettings",
    "load_config",
]
