"""Blob Store client - photos live here, the Material only keeps references."""
from railtrace.clients.http import ServiceClient
from railtrace.services.errors import UpstreamError


class BlobStore(ServiceClient):
    service_name = "blob-store"

    def put(self, data: bytes, content_type: str = "image/jpeg") -> str:
        """POST /objects (raw bytes) -> {"ref": ...}"""
        body = self.request_json(
            "POST",
            "/objects",
            content=data,
            headers={"Content-Type": content_type},
        )
        ref = body.get("ref") if isinstance(body, dict) else None
        if not ref:
            raise UpstreamError(self.service_name, "response carries no object reference")
        return ref

    def get(self, ref: str) -> bytes:
        return self.request("GET", f"/objects/{ref}").content
