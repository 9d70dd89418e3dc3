"""Inference Service client - classifies a stored photo."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from railtrace.clients.http import ServiceClient
from railtrace.services.errors import UpstreamError


@dataclass(frozen=True)
class Classification:
    component: str
    condition: str
    confidence: Optional[float]

    def as_detection(self, material_id: str) -> Dict[str, Any]:
        """Raw detection payload for the Fault Normalizer."""
        return {
            "materialId": material_id,
            "component": self.component,
            "condition": self.condition,
            "confidence": self.confidence,
        }


class InferenceClient(ServiceClient):
    service_name = "inference-service"

    def classify(self, image_ref: str) -> Classification:
        """
        POST /api/verify {"image_ref": ...}
        -> {"ok": true, "component": ..., "condition": ..., "confidence": ...}
        """
        body = self.request_json("POST", "/api/verify", json={"image_ref": image_ref})
        if not isinstance(body, dict):
            raise UpstreamError(self.service_name, "malformed JSON response")
        if body.get("ok") is False:
            raise UpstreamError(self.service_name, body.get("error") or "classification failed")

        component = body.get("component")
        condition = body.get("condition")
        if not component or not condition:
            raise UpstreamError(self.service_name, "response is missing component or condition")

        confidence = body.get("confidence")
        if confidence is not None and not isinstance(confidence, (int, float)):
            raise UpstreamError(self.service_name, "confidence is not a number")

        return Classification(component=str(component), condition=str(condition), confidence=confidence)
