from __future__ import annotations

from .service import BackendStatus, ClassificationOrchestrator, ClassificationResult

__all__ = ["BackendStatus", "ClassificationOrchestrator", "ClassificationResult"]
