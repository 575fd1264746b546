from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from ..ai.knowledge_base import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase, Severity
from ..ai.types import BackendAdapter, EncodedImage, Prediction
from ..errors import (
    ClassificationError,
    InferenceError,
    InitializationFailed,
    InvalidInput,
    NotReady,
    UnknownConditionError,
)
from .encoding import DEFAULT_MAX_IMAGE_BYTES, encode_image


logger = logging.getLogger(__name__)


class BackendStatus(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ClassificationResult:
    condition_key: str
    condition_name: str
    confidence: float
    description: str
    severity: Severity
    recommendations: tuple[str, ...]
    observed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition_key": self.condition_key,
            "condition_name": self.condition_name,
            "confidence": self.confidence,
            "description": self.description,
            "severity": self.severity.value,
            "recommendations": list(self.recommendations),
            "observed_at": self.observed_at.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassificationOrchestrator:
    """Owns the backend lifecycle and turns image bytes into diagnostic results.

    One instance lives for the lifetime of the application. ``initialize`` is
    single-flight: concurrent callers share one load attempt and its outcome.
    ``classify`` requires a ready backend and raises :class:`NotReady`
    otherwise; it never loads the backend implicitly.
    """

    def __init__(
        self,
        backend: BackendAdapter,
        knowledge_base: KnowledgeBase = DEFAULT_KNOWLEDGE_BASE,
        *,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._knowledge_base = knowledge_base
        self._max_image_bytes = max_image_bytes
        self._clock = clock
        self._status = BackendStatus.UNLOADED
        self._handle: Any = None
        self._load_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def status(self) -> BackendStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is BackendStatus.READY

    @property
    def is_initializing(self) -> bool:
        return self._status is BackendStatus.LOADING

    @property
    def knowledge_base(self) -> KnowledgeBase:
        return self._knowledge_base

    @property
    def backend_name(self) -> str:
        return self._backend.__class__.__name__

    async def initialize(self) -> None:
        if self._closing:
            raise InitializationFailed("Orchestrator is shutting down")
        if self._status is BackendStatus.READY:
            return
        task = self._load_task
        if task is None or task.done():
            # No await between the check and the assignment, so only one
            # caller can start a load per cold state.
            self._status = BackendStatus.LOADING
            task = asyncio.get_running_loop().create_task(self._load())
            self._load_task = task
        else:
            logger.debug("Joining in-flight backend load")
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # The shared load was cancelled by shutdown, not this caller.
            raise InitializationFailed("Backend load was cancelled by shutdown") from None

    async def _load(self) -> None:
        backend_name = self.backend_name
        started = time.monotonic()
        logger.info("Backend load started backend=%s", backend_name)
        try:
            handle = await self._backend.load()
        except asyncio.CancelledError:
            self._status = BackendStatus.UNLOADED
            raise
        except Exception as exc:
            self._handle = None
            self._status = BackendStatus.FAILED
            logger.error(
                "Backend load failed backend=%s elapsed=%.2fs error=%s",
                backend_name,
                time.monotonic() - started,
                exc,
            )
            raise InitializationFailed(f"Backend {backend_name} failed to load: {exc}") from exc
        self._handle = handle
        self._status = BackendStatus.READY
        logger.info(
            "Backend load complete backend=%s elapsed=%.2fs",
            backend_name,
            time.monotonic() - started,
        )

    async def classify(self, image: bytes) -> ClassificationResult:
        if self._status is not BackendStatus.READY:
            raise NotReady(
                f"Classification backend is {self._status.value}; call initialize() first"
            )
        # Bound to this request so a concurrent shutdown cannot swap it out mid-flight.
        handle = self._handle

        try:
            encoded = await asyncio.to_thread(encode_image, image, self._max_image_bytes)
        except InvalidInput as exc:
            logger.info("Rejected classification input: %s", exc)
            raise

        prediction = await self._infer(handle, encoded)
        try:
            entry = self._knowledge_base.lookup(prediction.key)
        except UnknownConditionError:
            logger.error(
                "Backend returned a condition missing from the knowledge base key=%s",
                prediction.key,
            )
            raise
        result = ClassificationResult(
            condition_key=entry.key,
            condition_name=entry.display_name,
            confidence=prediction.confidence,
            description=entry.description,
            severity=entry.severity,
            recommendations=tuple(entry.recommendations),
            observed_at=self._clock(),
        )
        logger.info(
            "Classification complete condition=%s confidence=%.2f severity=%s",
            result.condition_key,
            result.confidence,
            result.severity.value,
        )
        return result

    async def _infer(self, handle: Any, encoded: EncodedImage) -> Prediction:
        try:
            prediction = await self._backend.infer(handle, encoded)
        except ClassificationError as exc:
            logger.warning("Inference failed kind=%s error=%s", exc.kind, exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected backend failure during inference")
            raise InferenceError(f"Backend failed during inference: {exc}") from exc

        if not 0.0 <= prediction.confidence <= 1.0:
            raise InferenceError(
                f"Backend returned confidence {prediction.confidence!r} outside [0, 1]"
            )
        return prediction

    async def shutdown(self) -> None:
        # initialize() is refused until every await below has finished.
        self._closing = True
        try:
            task = self._load_task
            handle = self._handle
            self._load_task = None
            self._handle = None
            self._status = BackendStatus.UNLOADED
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, InitializationFailed):
                    await task
                if self._handle is not None:
                    handle = self._handle
                self._handle = None
                self._status = BackendStatus.UNLOADED
            if handle is not None:
                try:
                    await self._backend.close(handle)
                except Exception:
                    logger.exception("Failed to release backend handle")
        finally:
            self._closing = False
        logger.info("Classification orchestrator shut down")


__all__ = [
    "BackendStatus",
    "ClassificationOrchestrator",
    "ClassificationResult",
]
