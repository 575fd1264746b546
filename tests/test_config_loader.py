from __future__ import annotations

import json
from pathlib import Path

import pytest

from oralcheck.ai.remote import RemoteInferenceBackend
from oralcheck.ai.simulator import SimulatedBackend
from oralcheck.api.config_loader import AppConfig, load_config
from oralcheck.api.encoding import DEFAULT_MAX_IMAGE_BYTES
from oralcheck.api.main import build_backend, build_parser

EXAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "config" / "oralcheck.example.json"


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.backend.kind == "simulator"
    assert cfg.backend.simulator.load_delay == 2.0
    assert cfg.backend.simulator.infer_delay == 3.0
    assert (cfg.backend.simulator.min_confidence, cfg.backend.simulator.max_confidence) == (
        0.70,
        0.95,
    )
    assert cfg.classification.max_image_bytes == DEFAULT_MAX_IMAGE_BYTES
    assert cfg.classification.initialize_on_startup is True
    assert cfg.logging.level == "INFO"


def test_example_config_loads() -> None:
    cfg = load_config(EXAMPLE_CONFIG)
    assert cfg.server.port == 8000
    assert cfg.backend.remote.api_key_env == "ORALCHECK_API_TOKEN"
    assert cfg.backend.remote.label_map["Mouth Ulcer"] == "ulcers"


def test_invalid_values_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "oralcheck.json"
    path.write_text(
        json.dumps(
            {
                "server": {"port": "not-a-port"},
                "backend": {
                    "kind": "quantum",
                    "simulator": {"min_confidence": 0.99, "max_confidence": 0.2, "load_delay": -1},
                },
                "classification": {"max_image_bytes": 0},
                "logging": {"level": "chatty"},
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.server.port == 8000
    assert cfg.backend.kind == "simulator"
    assert cfg.backend.simulator.min_confidence == 0.70
    assert cfg.backend.simulator.max_confidence == 0.95
    assert cfg.backend.simulator.load_delay == 2.0
    assert cfg.classification.max_image_bytes == DEFAULT_MAX_IMAGE_BYTES
    assert cfg.logging.level == "INFO"


def test_partial_sections_are_accepted() -> None:
    cfg = AppConfig.from_dict({"backend": {"kind": "REMOTE", "remote": {"endpoint": "http://m"}}})
    assert cfg.backend.kind == "remote"
    assert cfg.backend.remote.endpoint == "http://m"
    assert cfg.server.host == "0.0.0.0"


def test_malformed_file_raises(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_missing_explicit_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.json")


def test_build_backend_selects_simulator() -> None:
    cfg = AppConfig.from_dict({"backend": {"simulator": {"load_delay": 0, "seed": 11}}})
    backend = build_backend(cfg)
    assert isinstance(backend, SimulatedBackend)
    assert backend.load_delay == 0.0


def test_build_backend_selects_remote(monkeypatch) -> None:
    monkeypatch.setenv("ORALCHECK_TEST_TOKEN", "secret")
    cfg = AppConfig.from_dict(
        {
            "backend": {
                "kind": "remote",
                "remote": {
                    "endpoint": "https://models.example/oral",
                    "api_key_env": "ORALCHECK_TEST_TOKEN",
                    "label_map": {"Healthy": "healthy"},
                },
            }
        }
    )
    backend = build_backend(cfg)
    assert isinstance(backend, RemoteInferenceBackend)
    assert backend.api_key == "secret"
    assert backend.output_keys() == frozenset({"healthy"})


def test_build_backend_requires_remote_endpoint() -> None:
    cfg = AppConfig.from_dict({"backend": {"kind": "remote"}})
    with pytest.raises(ValueError):
        build_backend(cfg)


def test_parser_overrides() -> None:
    args = build_parser().parse_args(["--port", "9001", "--backend", "remote"])
    assert args.port == 9001
    assert args.backend == "remote"
    assert args.config == "config/oralcheck.json"
