from __future__ import annotations


class ClassificationError(Exception):
    """Base class for every typed failure surfaced by the classification service."""

    kind: str = "classification_error"
    retryable: bool = False


class InitializationFailed(ClassificationError):
    kind = "initialization_failed"
    retryable = True


class NotReady(ClassificationError):
    kind = "not_ready"
    retryable = True


class InvalidInput(ClassificationError):
    kind = "invalid_input"


class InferenceError(ClassificationError):
    kind = "inference_error"
    retryable = True


class BackendUnavailable(InferenceError):
    kind = "backend_unavailable"


class UnknownConditionError(ClassificationError):
    """Adapter produced a condition key the knowledge base does not define."""

    kind = "unknown_condition"

    def __init__(self, key: str) -> None:
        super().__init__(f"Condition key {key!r} is not defined in the knowledge base")
        self.key = key


__all__ = [
    "ClassificationError",
    "InitializationFailed",
    "NotReady",
    "InvalidInput",
    "InferenceError",
    "BackendUnavailable",
    "UnknownConditionError",
]
