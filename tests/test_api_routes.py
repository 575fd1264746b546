import base64
import io
import random
import unittest

from fastapi.testclient import TestClient
from PIL import Image

from oralcheck.ai.simulator import SimulatedBackend
from oralcheck.ai.types import EncodedImage, Prediction
from oralcheck.api.server import create_app, decode_image_payload
from oralcheck.api.service import BackendStatus, ClassificationOrchestrator
from oralcheck.errors import InferenceError, InvalidInput


def _jpeg_base64() -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color=(200, 90, 90)).save(buffer, format="JPEG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class _FailingInferenceBackend:
    async def load(self) -> object:
        return object()

    async def infer(self, handle: object, image: EncodedImage) -> Prediction:
        raise InferenceError("inference endpoint timed out")

    async def close(self, handle: object) -> None:
        return None

    def output_keys(self) -> frozenset[str]:
        return frozenset()


class _UnknownConditionBackend(_FailingInferenceBackend):
    async def infer(self, handle: object, image: EncodedImage) -> Prediction:
        return Prediction(key="periodontitis", confidence=0.88)


def _simulator(**kwargs) -> SimulatedBackend:
    return SimulatedBackend(
        load_delay=0.0, infer_delay=0.0, rng=random.Random(5), **kwargs
    )


class ApiRoutesTests(unittest.TestCase):
    def test_startup_initializes_and_classifies(self) -> None:
        orchestrator = ClassificationOrchestrator(backend=_simulator())
        app = create_app(orchestrator)

        with TestClient(app) as client:
            self.assertEqual(client.get("/health").json(), {"status": "ok"})

            status = client.get("/v1/model/status").json()
            self.assertEqual(
                status, {"status": "ready", "ready": True, "initializing": False}
            )

            response = client.post(
                "/v1/classifications", json={"image_base64": _jpeg_base64()}
            )
            self.assertEqual(response.status_code, 200)
            data = response.json()
            self.assertIn(data["condition_key"], orchestrator.knowledge_base)
            self.assertGreaterEqual(data["confidence"], 0.70)
            self.assertLessEqual(data["confidence"], 0.95)
            self.assertIn(data["severity"], {"low", "medium", "high"})
            self.assertEqual(len(data["recommendations"]), 5)
            self.assertTrue(data["observed_at"])

        self.assertEqual(orchestrator.status, BackendStatus.UNLOADED)

    def test_data_url_payload_is_accepted(self) -> None:
        app = create_app(ClassificationOrchestrator(backend=_simulator()))

        with TestClient(app) as client:
            response = client.post(
                "/v1/classifications",
                json={"image_base64": f"data:image/jpeg;base64,{_jpeg_base64()}"},
            )

        self.assertEqual(response.status_code, 200)

    def test_invalid_payloads_return_400(self) -> None:
        app = create_app(ClassificationOrchestrator(backend=_simulator()))

        with TestClient(app) as client:
            empty = client.post("/v1/classifications", json={"image_base64": ""})
            garbage = client.post("/v1/classifications", json={"image_base64": "@@@"})
            not_image = client.post(
                "/v1/classifications",
                json={"image_base64": base64.b64encode(b"plain text").decode("ascii")},
            )

        for response in (empty, garbage, not_image):
            self.assertEqual(response.status_code, 400)
            detail = response.json()["detail"]
            self.assertEqual(detail["error"], "invalid_input")
            self.assertFalse(detail["retryable"])

    def test_classify_before_initialize_returns_503(self) -> None:
        app = create_app(
            ClassificationOrchestrator(backend=_simulator()), initialize_on_startup=False
        )

        with TestClient(app) as client:
            status = client.get("/v1/model/status").json()
            response = client.post(
                "/v1/classifications", json={"image_base64": _jpeg_base64()}
            )
            initialized = client.post("/v1/model/initialize")
            retried = client.post(
                "/v1/classifications", json={"image_base64": _jpeg_base64()}
            )

        self.assertEqual(status["status"], "unloaded")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"]["error"], "not_ready")
        self.assertTrue(response.json()["detail"]["retryable"])
        self.assertEqual(initialized.json()["status"], "ready")
        self.assertEqual(retried.status_code, 200)

    def test_failed_startup_load_can_be_retried(self) -> None:
        backend = _simulator(fail_loads=2)
        app = create_app(ClassificationOrchestrator(backend=backend))

        with TestClient(app) as client:
            after_startup = client.get("/v1/model/status").json()
            second = client.post("/v1/model/initialize")
            third = client.post("/v1/model/initialize")

        self.assertEqual(after_startup["status"], "failed")
        self.assertEqual(second.status_code, 503)
        self.assertEqual(second.json()["detail"]["error"], "initialization_failed")
        self.assertEqual(third.status_code, 200)
        self.assertEqual(third.json()["status"], "ready")
        self.assertEqual(backend.load_calls, 3)

    def test_inference_failure_returns_502(self) -> None:
        orchestrator = ClassificationOrchestrator(backend=_FailingInferenceBackend())
        app = create_app(orchestrator)

        with TestClient(app) as client:
            response = client.post(
                "/v1/classifications", json={"image_base64": _jpeg_base64()}
            )
            status = client.get("/v1/model/status").json()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"]["error"], "inference_error")
        self.assertEqual(status["status"], "ready")

    def test_unknown_condition_returns_500(self) -> None:
        orchestrator = ClassificationOrchestrator(backend=_UnknownConditionBackend())
        app = create_app(orchestrator)

        with TestClient(app) as client:
            response = client.post(
                "/v1/classifications", json={"image_base64": _jpeg_base64()}
            )
            status = client.get("/v1/model/status").json()

        self.assertEqual(response.status_code, 500)
        detail = response.json()["detail"]
        self.assertEqual(detail["error"], "unknown_condition")
        self.assertIn("periodontitis", detail["message"])
        self.assertFalse(detail["retryable"])
        self.assertNotIn("condition_name", response.json())
        self.assertEqual(status["status"], "ready")

    def test_conditions_listing(self) -> None:
        app = create_app(
            ClassificationOrchestrator(backend=_simulator()), initialize_on_startup=False
        )

        with TestClient(app) as client:
            conditions = client.get("/v1/conditions").json()

        keys = [condition["key"] for condition in conditions]
        self.assertEqual(len(keys), 7)
        self.assertIn("healthy", keys)
        healthy = next(c for c in conditions if c["key"] == "healthy")
        self.assertEqual(healthy["display_name"], "Healthy Oral Tissue")
        self.assertEqual(healthy["severity"], "low")

    def test_create_app_requires_orchestrator(self) -> None:
        with self.assertRaises(TypeError):
            create_app()  # type: ignore[call-arg]


class DecodePayloadTests(unittest.TestCase):
    def test_rejects_invalid_base64(self) -> None:
        with self.assertRaises(InvalidInput):
            decode_image_payload("not base64!")

    def test_strips_data_url_prefix(self) -> None:
        encoded = base64.b64encode(b"abc").decode("ascii")
        self.assertEqual(decode_image_payload(f"data:image/png;base64,{encoded}"), b"abc")


if __name__ == "__main__":
    unittest.main()
