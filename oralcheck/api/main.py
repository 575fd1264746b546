from __future__ import annotations

import argparse
import logging
import os
import random
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from ..ai import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase, RemoteInferenceBackend, SimulatedBackend
from ..ai.types import BackendAdapter
from .config_loader import AppConfig, load_config
from .server import create_app
from .service import ClassificationOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/oralcheck.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the OralCheck classification API server",
        epilog="Configuration is loaded from config/oralcheck.json. "
               "CLI arguments override config file settings.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", type=str, default=None, help="Override server host")
    parser.add_argument("--port", type=int, default=None, help="Override server port")
    parser.add_argument(
        "--backend",
        choices=("simulator", "remote"),
        default=None,
        help="Override the inference backend",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Override the log level",
    )
    return parser


def build_backend(
    cfg: AppConfig, knowledge_base: KnowledgeBase = DEFAULT_KNOWLEDGE_BASE
) -> BackendAdapter:
    """Select the backend adapter named by the configuration."""
    if cfg.backend.kind == "remote":
        remote = cfg.backend.remote
        if not remote.endpoint:
            raise ValueError("backend.remote.endpoint must be set for the remote backend")
        api_key = os.environ.get(remote.api_key_env)
        if not api_key:
            logger.warning(
                "Environment variable %s is not set; calling %s without credentials",
                remote.api_key_env,
                remote.endpoint,
            )
        return RemoteInferenceBackend(
            endpoint=remote.endpoint,
            api_key=api_key,
            timeout=remote.timeout,
            health_url=remote.health_url,
            label_map=dict(remote.label_map),
            knowledge_base=knowledge_base,
        )

    sim = cfg.backend.simulator
    return SimulatedBackend(
        knowledge_base=knowledge_base,
        load_delay=sim.load_delay,
        infer_delay=sim.infer_delay,
        min_confidence=sim.min_confidence,
        max_confidence=sim.max_confidence,
        timeout=sim.timeout,
        rng=random.Random(sim.seed),
    )


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s"
        )
    parser = build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    try:
        cfg = load_config(config_path if config_path.exists() else None)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    if args.backend:
        cfg.backend.kind = args.backend
    if args.log_level:
        cfg.logging.level = args.log_level

    logging.getLogger().setLevel(cfg.logging.level)
    if not config_path.exists():
        logger.info(
            "Configuration file %s not found; using defaults. "
            "Copy config/oralcheck.example.json to config/oralcheck.json",
            config_path,
        )

    try:
        backend = build_backend(cfg)
    except ValueError as exc:
        logger.error("Invalid backend configuration: %s", exc)
        sys.exit(1)

    orchestrator = ClassificationOrchestrator(
        backend=backend,
        knowledge_base=DEFAULT_KNOWLEDGE_BASE,
        max_image_bytes=cfg.classification.max_image_bytes,
    )
    app = create_app(
        orchestrator,
        initialize_on_startup=cfg.classification.initialize_on_startup,
    )

    logger.info(
        "Starting server host=%s port=%d backend=%s",
        cfg.server.host,
        cfg.server.port,
        cfg.backend.kind,
    )
    config = uvicorn.Config(
        app,
        host=cfg.server.host,
        port=cfg.server.port,
        log_level=cfg.logging.level.lower(),
        timeout_graceful_shutdown=1,
    )
    server = uvicorn.Server(config)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received during shutdown")


if __name__ == "__main__":
    main()
