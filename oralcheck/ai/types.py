from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class EncodedImage:
    mime_type: str
    data: bytes
    width: int
    height: int

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


@dataclass(frozen=True)
class Prediction:
    key: str
    confidence: float


class BackendAdapter(Protocol):
    """Turns encoded image data into a condition key and a confidence score.

    ``load`` returns an opaque handle that the caller passes back into
    ``infer`` and ``close``; adapters keep no readiness state of their own.
    """

    async def load(self) -> Any: ...

    async def infer(self, handle: Any, image: EncodedImage) -> Prediction: ...

    async def close(self, handle: Any) -> None: ...

    def output_keys(self) -> frozenset[str]: ...


def clamp_confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(0.0, min(1.0, score))


__all__ = ["BackendAdapter", "EncodedImage", "Prediction", "clamp_confidence"]
