import logging
from pathlib import Path
from typing import Any, Optional, Union

from api.object_store import ObjectStore
from config.settings import ADMIN_DEDUCTION_DOCUMENTS
from database.models import DeductionRecordDB
from database.repository import DeductionRepository
from models.errors import NotFoundError, UpstreamError, ValidationError
from utils.uploads import remove_temp_file
from utils.validators import parse_bool

logger = logging.getLogger(__name__)


class AdminReviewWorkflow:
    """
    Pending (seenByAdmin=false) -> Reviewed (seenByAdmin=true).

    The transition is one-way. An admin may attach a counter-signed document;
    a previously attached admin document is deleted from the object store
    before the replacement is uploaded.
    """

    def __init__(self, repository: DeductionRepository, object_store: ObjectStore):
        self.repo = repository
        self.store = object_store

    def update_deduction_by_admin(self, record_id: Any, seen_by_admin: Any = None,
                                  document_path: Optional[Union[str, Path]] = None) -> DeductionRecordDB:
        try:
            record = self._get_record(record_id)

            seen = None
            if seen_by_admin is not None and seen_by_admin != '':
                seen = parse_bool(seen_by_admin)
                if seen is None:
                    raise ValidationError("seenByAdmin must be true or false")

            if seen is None and not document_path:
                raise ValidationError("No update data provided")

            if seen is False and record.seen_by_admin:
                raise ValidationError("A reviewed deduction cannot be marked as unreviewed")

            admin_document = None
            if document_path:
                admin_document = self._replace_admin_document(record, document_path)

            record = self.repo.update_review(record, seen_by_admin=seen, admin_document=admin_document)
            logger.info("Admin updated deduction id=%s seenByAdmin=%s document=%s",
                        record.id, record.seen_by_admin, admin_document is not None)
            return record
        finally:
            remove_temp_file(document_path)

    def _get_record(self, record_id: Any) -> DeductionRecordDB:
        try:
            record_pk = int(str(record_id).strip())
        except (TypeError, ValueError):
            raise NotFoundError("Deduction record not found")
        record = self.repo.get_deduction_record(record_pk)
        if record is None:
            raise NotFoundError("Deduction record not found")
        return record

    def _replace_admin_document(self, record: DeductionRecordDB, document_path):
        previous = record.admin_document_public_id
        if previous:
            self.store.delete(previous, record.admin_document_resource_type)

        try:
            return self.store.upload(document_path, ADMIN_DEDUCTION_DOCUMENTS)
        except UpstreamError:
            if previous:
                # The old document is gone; do not keep pointing at it
                record.admin_document_public_id = None
                record.admin_document_url = None
                record.admin_document_resource_type = None
                self.repo.db.commit()
            raise
