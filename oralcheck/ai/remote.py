from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

import requests

from ..errors import BackendUnavailable, InferenceError
from .knowledge_base import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase
from .types import BackendAdapter, EncodedImage, Prediction, clamp_confidence


logger = logging.getLogger(__name__)

_LABEL_SEPARATORS = re.compile(r"[\s\-/]+")


def normalize_label(value: str) -> str:
    return _LABEL_SEPARATORS.sub("_", value.strip().lower())


@dataclass
class RemoteSession:
    session: requests.Session
    endpoint: str


@dataclass
class RemoteInferenceBackend(BackendAdapter):
    """Classify images by delegating to a hosted image-classification model.

    The endpoint receives the raw image bytes with the image MIME type and
    answers either with a ranked list of ``{"label", "score"}`` objects (the
    Hugging Face inference API shape) or a single object carrying
    ``label``/``state`` and ``confidence``/``score``.
    """

    endpoint: str
    api_key: str | None = None
    timeout: float = 30.0
    health_url: str | None = None
    label_map: dict[str, str] = field(default_factory=dict)
    knowledge_base: KnowledgeBase = DEFAULT_KNOWLEDGE_BASE
    session_factory: Callable[[], requests.Session] = requests.Session

    def __post_init__(self) -> None:
        self.label_map = {
            normalize_label(label): key for label, key in self.label_map.items()
        }

    async def load(self) -> RemoteSession:
        if not self.endpoint:
            raise RuntimeError("An inference endpoint is required for the remote backend")
        return await asyncio.to_thread(self._open_session)

    async def infer(self, handle: RemoteSession | None, image: EncodedImage) -> Prediction:
        if handle is None:
            raise BackendUnavailable("Remote inference session is not open")
        payload = await asyncio.to_thread(self._send_request, handle, image)
        return self._parse_payload(payload)

    async def close(self, handle: RemoteSession | None) -> None:
        if handle is not None:
            handle.session.close()

    def output_keys(self) -> frozenset[str]:
        if self.label_map:
            return frozenset(self.label_map.values())
        return self.knowledge_base.keys()

    def _open_session(self) -> RemoteSession:
        session = self.session_factory()
        if self.api_key:
            session.headers["Authorization"] = f"Bearer {self.api_key}"
        if self.health_url:
            try:
                response = session.get(self.health_url, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException:
                session.close()
                raise
            logger.info("Remote inference endpoint healthy url=%s", self.health_url)
        return RemoteSession(session=session, endpoint=self.endpoint)

    def _send_request(self, handle: RemoteSession, image: EncodedImage) -> Any:
        try:
            response = handle.session.post(
                handle.endpoint,
                data=image.data,
                headers={"Content-Type": image.mime_type},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            raise InferenceError(
                f"Timed out after {self.timeout:.1f}s waiting for inference response"
            ) from exc
        except requests.RequestException as exc:
            raise InferenceError(f"Failed to reach inference endpoint: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise InferenceError("Inference response was not valid JSON") from exc

    def _parse_payload(self, payload: Any) -> Prediction:
        if isinstance(payload, dict) and payload.get("error"):
            raise InferenceError(f"Inference endpoint reported an error: {payload['error']}")

        if isinstance(payload, list):
            candidates = [item for item in payload if isinstance(item, dict)]
            if not candidates:
                raise InferenceError("Inference response did not include any predictions")
            top = max(candidates, key=lambda item: clamp_confidence(item.get("score")))
            raw_label = top.get("label")
            score_value = top.get("score")
        elif isinstance(payload, dict):
            raw_label = payload.get("label") or payload.get("state")
            score_value = payload.get("confidence", payload.get("score"))
        else:
            raise InferenceError("Unexpected response format from inference endpoint")

        if not raw_label:
            raise InferenceError("Inference response did not include a label")
        key = self._map_label(str(raw_label))
        return Prediction(key=key, confidence=clamp_confidence(score_value))

    def _map_label(self, value: str) -> str:
        label = normalize_label(value)
        # Unmapped labels pass through; the orchestrator rejects unknown keys.
        return self.label_map.get(label, label)


__all__ = ["RemoteInferenceBackend", "RemoteSession", "normalize_label"]
