from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

from ..errors import BackendUnavailable, InferenceError
from .knowledge_base import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase
from .types import BackendAdapter, EncodedImage, Prediction


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedModel:
    """Handle returned by :meth:`SimulatedBackend.load`."""

    keys: tuple[str, ...]
    generation: int


@dataclass
class SimulatedBackend(BackendAdapter):
    """Stand-in backend that ignores image content and picks a random condition."""

    knowledge_base: KnowledgeBase = DEFAULT_KNOWLEDGE_BASE
    load_delay: float = 2.0
    infer_delay: float = 3.0
    min_confidence: float = 0.70
    max_confidence: float = 0.95
    timeout: float = 30.0
    fail_loads: int = 0
    rng: random.Random = field(default_factory=random.Random)
    load_calls: int = field(init=False, default=0)
    infer_calls: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_confidence <= self.max_confidence <= 1.0:
            raise ValueError(
                "Simulator confidence range must satisfy 0 <= min <= max <= 1"
            )

    async def load(self) -> SimulatedModel:
        self.load_calls += 1
        logger.info(
            "Loading simulated model attempt=%d delay=%.2fs",
            self.load_calls,
            self.load_delay,
        )
        await asyncio.sleep(self.load_delay)
        if self.fail_loads > 0:
            self.fail_loads -= 1
            raise RuntimeError("Simulated model failed to load")
        # Sorted so a seeded rng yields the same sequence across runs.
        return SimulatedModel(
            keys=tuple(sorted(self.knowledge_base.keys())),
            generation=self.load_calls,
        )

    async def infer(self, handle: SimulatedModel | None, image: EncodedImage) -> Prediction:
        if handle is None:
            raise BackendUnavailable("Simulated model has not been loaded")
        self.infer_calls += 1
        try:
            await asyncio.wait_for(asyncio.sleep(self.infer_delay), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise InferenceError(
                f"Simulated inference exceeded timeout of {self.timeout:.2f}s"
            ) from exc
        key = self.rng.choice(handle.keys)
        confidence = self.rng.uniform(self.min_confidence, self.max_confidence)
        logger.debug(
            "Simulated inference mime=%s size=%dx%d key=%s confidence=%.2f",
            image.mime_type,
            image.width,
            image.height,
            key,
            confidence,
        )
        return Prediction(key=key, confidence=confidence)

    async def close(self, handle: SimulatedModel | None) -> None:
        logger.debug("Releasing simulated model handle=%s", handle)

    def output_keys(self) -> frozenset[str]:
        return self.knowledge_base.keys()


__all__ = ["SimulatedBackend", "SimulatedModel"]
