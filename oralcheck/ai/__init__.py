from __future__ import annotations

from .knowledge_base import (
    DEFAULT_KNOWLEDGE_BASE,
    ConditionEntry,
    KnowledgeBase,
    Severity,
)
from .types import BackendAdapter, EncodedImage, Prediction

__all__ = [
    "BackendAdapter",
    "ConditionEntry",
    "DEFAULT_KNOWLEDGE_BASE",
    "EncodedImage",
    "KnowledgeBase",
    "Prediction",
    "Severity",
    "SimulatedBackend",
    "RemoteInferenceBackend",
]


def __getattr__(name: str):
    if name == "SimulatedBackend":
        from .simulator import SimulatedBackend

        return SimulatedBackend
    if name == "RemoteInferenceBackend":
        from .remote import RemoteInferenceBackend

        return RemoteInferenceBackend
    raise AttributeError(f"module 'oralcheck.ai' has no attribute {name!r}")
