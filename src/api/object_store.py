"""
Object store (document hosting) clients.

Uploads and deletes are blocking calls made from within the request that
needs them. Failures surface as UpstreamError; nothing is retried.
"""
import hashlib
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Union

import httpx

from models.deduction import StoredDocument
from models.errors import UpstreamError

logger = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
RESOURCE_TYPES = ("image", "raw", "video")


class ObjectStore:
    """Interface every document store implements"""

    def upload(self, local_path: Union[str, Path], namespace: str) -> StoredDocument:
        raise NotImplementedError

    def delete(self, public_id: str, resource_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class CloudinaryObjectStore(ObjectStore):
    """Signed Cloudinary REST uploads/destroys over httpx"""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str,
                 client: Optional[httpx.Client] = None, default_resource_type: str = "image",
                 timeout: float = 60.0):
        if not (cloud_name and api_key and api_secret):
            raise ValueError("Cloudinary cloud name, API key and API secret are required")
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.default_resource_type = default_resource_type
        self.client = client or httpx.Client(timeout=timeout)

    def sign(self, params: Dict[str, str]) -> str:
        """SHA-1 over the sorted 'k=v' pairs followed by the API secret"""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed(self, params: Dict[str, str]) -> Dict[str, str]:
        params = dict(params, timestamp=str(int(time.time())))
        params["signature"] = self.sign(params)
        params["api_key"] = self.api_key
        return params

    def upload(self, local_path: Union[str, Path], namespace: str) -> StoredDocument:
        path = Path(local_path)
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/auto/upload"
        data = self._signed({"folder": namespace})

        try:
            with path.open("rb") as fh:
                r = self.client.post(url, data=data, files={"file": (path.name, fh)})
            payload = r.json()
        except (OSError, httpx.HTTPError, ValueError) as e:
            logger.error("Upload of %s to %s failed: %s", path.name, namespace, e)
            raise UpstreamError("Failed to upload document", detail=str(e)) from e

        if r.status_code >= 400 or "error" in payload:
            error = payload.get("error")
            detail = error.get("message") if isinstance(error, dict) else str(payload)
            logger.error("Object store rejected upload to %s: %s", namespace, detail)
            raise UpstreamError("Failed to upload document", detail=detail)

        public_id = payload.get("public_id")
        secure_url = payload.get("secure_url") or payload.get("url")
        if not public_id or not secure_url:
            raise UpstreamError("Failed to upload document", detail=f"Unexpected response: {payload}")

        # "auto" uploads land under image, video or raw; destroy must use the same one
        resource_type = payload.get("resource_type") or self.default_resource_type
        logger.info("Uploaded %s to %s as %s (%s)", path.name, namespace, public_id, resource_type)
        return StoredDocument(public_id=public_id, url=secure_url, resource_type=resource_type)

    def delete(self, public_id: str, resource_type: Optional[str] = None) -> None:
        """
        Destroy a stored document under the resource type it was uploaded as.

        References saved without a resource type are tried as each type in turn,
        since a "not found" under the wrong type says nothing about the file.
        """
        for candidate in ([resource_type] if resource_type else list(RESOURCE_TYPES)):
            if self._destroy(public_id, candidate) == "ok":
                logger.info("Deleted %s (%s) from object store", public_id, candidate)
                return
        logger.warning("Document %s was already absent from the object store", public_id)

    def _destroy(self, public_id: str, resource_type: str) -> str:
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/destroy"
        data = self._signed({"public_id": public_id})

        try:
            r = self.client.post(url, data=data)
            payload = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Delete of %s failed: %s", public_id, e)
            raise UpstreamError("Failed to delete document", detail=str(e)) from e

        result = payload.get("result")
        if r.status_code >= 400 or result not in ("ok", "not found"):
            logger.error("Object store rejected delete of %s: %s", public_id, payload)
            raise UpstreamError("Failed to delete document", detail=str(payload))
        return result

    def close(self) -> None:
        self.client.close()
