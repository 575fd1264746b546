from __future__ import annotations

import base64
import binascii
import logging

from fastapi import FastAPI, HTTPException

from ..errors import (
    ClassificationError,
    InferenceError,
    InitializationFailed,
    InvalidInput,
    NotReady,
    UnknownConditionError,
)
from .schemas import (
    ClassificationRequest,
    ClassificationResponse,
    ConditionModel,
    ErrorResponse,
    ModelStatusResponse,
)
from .service import ClassificationOrchestrator


logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[ClassificationError], int] = {
    InvalidInput: 400,
    UnknownConditionError: 500,
    InferenceError: 502,
    NotReady: 503,
    InitializationFailed: 503,
}


def _error_status(exc: ClassificationError) -> int:
    for error_type in type(exc).__mro__:
        status = _ERROR_STATUS.get(error_type)  # type: ignore[arg-type]
        if status is not None:
            return status
    return 500


def _http_error(exc: ClassificationError) -> HTTPException:
    body = ErrorResponse(error=exc.kind, message=str(exc), retryable=exc.retryable)
    return HTTPException(status_code=_error_status(exc), detail=body.model_dump())


def decode_image_payload(value: str) -> bytes:
    text = value.strip()
    # Accept data URLs as produced by browser FileReader.readAsDataURL.
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInput("Invalid base64 image payload") from exc


def create_app(
    orchestrator: ClassificationOrchestrator,
    initialize_on_startup: bool = True,
) -> FastAPI:
    service = orchestrator
    knowledge_base = service.knowledge_base

    app = FastAPI(title="OralCheck API", version="0.1.0")
    app.state.orchestrator = service

    def _status_response() -> ModelStatusResponse:
        return ModelStatusResponse(
            status=service.status.value,
            ready=service.is_ready,
            initializing=service.is_initializing,
        )

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/model/status", response_model=ModelStatusResponse)
    def model_status() -> ModelStatusResponse:
        return _status_response()

    @app.post("/v1/model/initialize", response_model=ModelStatusResponse)
    async def initialize_model() -> ModelStatusResponse:
        try:
            await service.initialize()
        except InitializationFailed as exc:
            logger.warning("Model initialization request failed: %s", exc)
            raise _http_error(exc) from exc
        return _status_response()

    @app.get("/v1/conditions", response_model=list[ConditionModel])
    def list_conditions() -> list[ConditionModel]:
        return [
            ConditionModel(
                key=entry.key,
                display_name=entry.display_name,
                description=entry.description,
                severity=entry.severity.value,
                recommendations=list(entry.recommendations),
            )
            for entry in knowledge_base
        ]

    @app.post("/v1/classifications", response_model=ClassificationResponse)
    async def classify_image(request: ClassificationRequest) -> ClassificationResponse:
        logger.info(
            "Classification requested payload_chars=%d", len(request.image_base64 or "")
        )
        try:
            image_bytes = decode_image_payload(request.image_base64)
            result = await service.classify(image_bytes)
        except ClassificationError as exc:
            logger.info("Classification request failed kind=%s error=%s", exc.kind, exc)
            raise _http_error(exc) from exc
        return ClassificationResponse(**result.to_dict())

    @app.on_event("startup")
    async def _initialize_backend() -> None:
        if not initialize_on_startup:
            return
        try:
            await service.initialize()
        except InitializationFailed as exc:
            # Reported through /v1/model/status; clients retry via /v1/model/initialize.
            logger.error("Backend initialization at startup failed: %s", exc)

    @app.on_event("shutdown")
    async def _shutdown_backend() -> None:
        await service.shutdown()

    logger.info(
        "API server initialised backend=%s conditions=%d",
        service.backend_name,
        len(knowledge_base),
    )

    return app


__all__ = ["create_app", "decode_image_payload"]
