import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from models.deduction import StoredDocument
from models.errors import UpstreamError
from .object_store import ObjectStore

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {'.png', '.jpg', '.jpeg', '.gif', '.webp', '.pdf'}


class MockObjectStore(ObjectStore):
    """
    In-memory object store for local development and tests.

    Like Cloudinary "auto" uploads, images and PDFs are stored as 'image' and
    everything else as 'raw'; a delete under the wrong resource type finds
    nothing. With retain=False no file contents or call history are kept,
    so a long-running process does not grow without bound.
    """

    BASE_URL = "https://mock-object-store.local"

    def __init__(self, retain: bool = True):
        self.retain = retain
        self.documents: Dict[str, bytes] = {}
        self.resource_types: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.fail_uploads = False
        self.fail_deletes = False
        self.uploads: List[Tuple[str, str]] = []  # (namespace, public_id)

    def upload(self, local_path: Union[str, Path], namespace: str) -> StoredDocument:
        path = Path(local_path)
        if self.fail_uploads:
            raise UpstreamError("Failed to upload document", detail="mock upload failure")
        try:
            content = path.read_bytes()
        except OSError as e:
            raise UpstreamError("Failed to upload document", detail=str(e)) from e

        public_id = f"{namespace}/{uuid.uuid4().hex}"
        resource_type = "image" if path.suffix.lower() in IMAGE_SUFFIXES else "raw"
        if self.retain:
            self.documents[public_id] = content
            self.resource_types[public_id] = resource_type
            self.uploads.append((namespace, public_id))
        logger.info("Mock upload %s -> %s (%s)", path.name, public_id, resource_type)
        return StoredDocument(
            public_id=public_id,
            url=f"{self.BASE_URL}/{public_id}{path.suffix}",
            resource_type=resource_type,
        )

    def delete(self, public_id: str, resource_type: Optional[str] = None) -> None:
        if self.fail_deletes:
            raise UpstreamError("Failed to delete document", detail="mock delete failure")
        stored_type = self.resource_types.get(public_id)
        if stored_type and (resource_type or "image") != stored_type:
            logger.warning("Mock delete %s as %s: not found", public_id, resource_type or "image")
            return
        self.documents.pop(public_id, None)
        self.resource_types.pop(public_id, None)
        if self.retain:
            self.deleted.append(public_id)
        logger.info("Mock delete %s", public_id)
