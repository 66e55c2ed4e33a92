from flask import Flask, Blueprint, current_app, request, jsonify, send_file
from io import BytesIO
from werkzeug.exceptions import HTTPException
from pathlib import Path
import atexit
import logging
import os
import sys

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from api.mock_object_store import MockObjectStore
from api.object_store import CloudinaryObjectStore, ObjectStore
from database.db import create_db_engine, create_session_factory, init_db
from database.repository import DeductionRepository
from models.errors import DeductionServiceError, InternalError, ValidationError
from processors.admin_review import AdminReviewWorkflow
from processors.agreement_status import AgreementStatusService
from processors.deduction_export_generator import DeductionExportGenerator
from processors.deduction_ingestor import DeductionIngestor
from processors.deduction_query import DeductionQueryService, parse_filters
from processors.grampanchayat_registry import GrampanchayatRegistry
from processors.reconciliation import ReconciliationAggregator
from utils.uploads import remove_temp_file, stage_upload
from config.settings import EXPORT_FILENAME, XLSX_MIMETYPE, Settings, load_settings

logger = logging.getLogger(__name__)

bp = Blueprint('deductions', __name__, url_prefix='/api')


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_object_store(settings: Settings) -> ObjectStore:
    if settings.object_store_configured:
        return CloudinaryObjectStore(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
        )
    if settings.debug:
        logger.warning("Cloudinary credentials not set, using in-memory object store")
    else:
        logger.error("Cloudinary credentials not set outside debug mode; uploaded documents "
                     "are discarded and their URLs do not resolve")
    return MockObjectStore(retain=False)


def create_app(settings: Settings = None, object_store: ObjectStore = None) -> Flask:
    """Application factory; settings and collaborators are passed in explicitly"""
    settings = settings or load_settings()

    app = Flask(__name__)
    app.config['SECRET_KEY'] = settings.secret_key
    app.config['DEBUG'] = settings.debug
    app.config['MAX_CONTENT_LENGTH'] = settings.max_upload_bytes
    app.config['SETTINGS'] = settings

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    app.config['DB_ENGINE'] = engine
    app.config['SESSION_FACTORY'] = create_session_factory(engine)
    if object_store is None:
        # One client for the life of the process
        object_store = build_object_store(settings)
        atexit.register(object_store.close)
    app.config['OBJECT_STORE'] = object_store

    settings.upload_tmp_dir.mkdir(parents=True, exist_ok=True)

    app.register_blueprint(bp)
    app.register_error_handler(DeductionServiceError, handle_service_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_unexpected_error)
    return app


# ============================================================================
# Helpers
# ============================================================================

def _ok(data=None, message=None, status=200):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return jsonify(body), status


def _error(message, status, error=None):
    body = {'success': False, 'message': message}
    if error:
        body['error'] = error
    return jsonify(body), status


def _session():
    return current_app.config['SESSION_FACTORY']()


def _settings() -> Settings:
    return current_app.config['SETTINGS']


def _store() -> ObjectStore:
    return current_app.config['OBJECT_STORE']


def _entity_id(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValidationError("Invalid Grampanchayat ID format")


def _request_payload() -> dict:
    """JSON body, or multipart/urlencoded form with repeated keys kept as lists"""
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return payload

    payload = {}
    for key in request.form.keys():
        values = request.form.getlist(key)
        payload[key] = values if len(values) > 1 else values[0]
    return payload


# ============================================================================
# Error handlers
# ============================================================================

def handle_service_error(e: DeductionServiceError):
    if e.status_code >= 500:
        logger.error("%s: %s (%s)", type(e).__name__, e.message, e.detail)
    return _error(e.message, e.status_code, e.detail)


def handle_http_error(e: HTTPException):
    return _error(e.description or e.name, e.code)


def handle_unexpected_error(e: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.path)
    err = InternalError("Internal Server Error", detail=str(e) if current_app.debug else None)
    return _error(err.message, err.status_code, err.detail)


# ============================================================================
# API Endpoints
# ============================================================================

@bp.route('/testing')
def testing():
    """Liveness check"""
    return _ok(message='API is working')


@bp.route('/staff/add-deduction', methods=['POST'])
def add_deduction():
    """Staff submits a deduction record (JSON, or multipart with 'file')"""
    document_path = stage_upload(request.files.get('file'), _settings().upload_tmp_dir)
    db = _session()
    try:
        payload = _request_payload()
        ingestor = DeductionIngestor(DeductionRepository(db), _store(), _settings().strict_entry_amounts)
        record = ingestor.add_deduction(payload, document_path=document_path)
        return _ok(record.to_dict(), 'Deduction record added successfully', 201)
    finally:
        remove_temp_file(document_path)
        db.close()


@bp.route('/staff/getAllDeductions')
def get_all_deductions():
    """Deductions across grampanchayats, optionally narrowed by ?grampanchayat="""
    db = _session()
    try:
        gp = request.args.get('grampanchayat')
        filters, page, limit = parse_filters(request.args, _entity_id(gp) if gp else None)
        data = DeductionQueryService(DeductionRepository(db)).list_deductions(filters, page, limit)
        return _ok(data, 'Deductions fetched successfully')
    finally:
        db.close()


@bp.route('/admin/getAllDeductions/<grampanchayat_id>')
def get_all_deductions_by_grampanchayat(grampanchayat_id):
    """Filtered page of one grampanchayat's deductions plus totals"""
    db = _session()
    try:
        filters, page, limit = parse_filters(request.args, _entity_id(grampanchayat_id))
        data = DeductionQueryService(DeductionRepository(db)).list_deductions(filters, page, limit)
        return _ok(data, 'Deductions fetched successfully')
    finally:
        db.close()


@bp.route('/admin/updateDeductionByAdmin/<deduction_id>', methods=['PUT'])
def update_deduction_by_admin(deduction_id):
    """Mark reviewed and/or attach the admin's counter-signed document"""
    document_path = stage_upload(request.files.get('document'), _settings().upload_tmp_dir)
    db = _session()
    try:
        payload = _request_payload()
        workflow = AdminReviewWorkflow(DeductionRepository(db), _store())
        record = workflow.update_deduction_by_admin(
            deduction_id,
            seen_by_admin=payload.get('seenByAdmin'),
            document_path=document_path,
        )
        return _ok(record.to_dict(), 'Deduction record updated successfully')
    finally:
        remove_temp_file(document_path)
        db.close()


@bp.route('/admin/exportAllDeductionData/<grampanchayat_id>')
def export_all_deduction_data(grampanchayat_id):
    """Download all of a grampanchayat's deductions as a spreadsheet"""
    db = _session()
    try:
        content = DeductionExportGenerator(DeductionRepository(db)).generate(_entity_id(grampanchayat_id))
    finally:
        db.close()
    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=EXPORT_FILENAME,
    )


@bp.route('/admin/add-gramPanchayat', methods=['POST'])
def add_grampanchayat():
    db = _session()
    try:
        registry = GrampanchayatRegistry(DeductionRepository(db))
        gp = registry.add_grampanchayat(_request_payload())
        return _ok(gp.to_dict(), 'Grampanchayat added successfully', 201)
    finally:
        db.close()


@bp.route('/admin/allGrampanchayats')
def get_all_grampanchayats():
    db = _session()
    try:
        registry = GrampanchayatRegistry(DeductionRepository(db))
        return _ok([gp.to_dict() for gp in registry.get_all_grampanchayats()])
    finally:
        db.close()


@bp.route('/staff/getSingleGrampanchayatById/<grampanchayat_id>')
def get_single_grampanchayat(grampanchayat_id):
    db = _session()
    try:
        registry = GrampanchayatRegistry(DeductionRepository(db))
        return _ok(registry.get_grampanchayat(grampanchayat_id).to_dict())
    finally:
        db.close()


@bp.route('/staff/agreement-status', methods=['POST'])
def create_agreement_status():
    """Staff records a yearly agreement status (JSON, or multipart with 'uploadedOCCopy')"""
    document_path = stage_upload(request.files.get('uploadedOCCopy'), _settings().upload_tmp_dir)
    db = _session()
    try:
        payload = _request_payload()
        service = AgreementStatusService(DeductionRepository(db), _store())
        agreement = service.create_agreement_status(payload, document_path=document_path)
        return _ok(agreement.to_dict(), 'Agreement status created successfully', 201)
    finally:
        remove_temp_file(document_path)
        db.close()


@bp.route('/staff/agreement-status/<grampanchayat_id>')
def get_agreement_status(grampanchayat_id):
    db = _session()
    try:
        service = AgreementStatusService(DeductionRepository(db), _store())
        agreements = service.list_agreements(_entity_id(grampanchayat_id))
        return _ok([a.to_dict() for a in agreements], 'Agreement status fetched successfully')
    finally:
        db.close()


@bp.route('/staff/agreement-status/<agreement_id>', methods=['PUT'])
def update_agreement_status(agreement_id):
    document_path = stage_upload(request.files.get('uploadedOCCopy'), _settings().upload_tmp_dir)
    db = _session()
    try:
        payload = _request_payload()
        service = AgreementStatusService(DeductionRepository(db), _store())
        agreement = service.update_agreement_status(agreement_id, payload, document_path=document_path)
        return _ok(agreement.to_dict(), 'Agreement status updated successfully')
    finally:
        remove_temp_file(document_path)
        db.close()


@bp.route('/staff/agreement-status/<agreement_id>', methods=['DELETE'])
def delete_agreement_status(agreement_id):
    db = _session()
    try:
        AgreementStatusService(DeductionRepository(db), _store()).delete_agreement_status(agreement_id)
        return _ok(message='Agreement status deleted successfully')
    finally:
        db.close()


@bp.route('/admin/agreements/<grampanchayat_id>')
def get_agreements_by_grampanchayat(grampanchayat_id):
    """All agreement statuses of one grampanchayat, newest first"""
    db = _session()
    try:
        service = AgreementStatusService(DeductionRepository(db), _store())
        agreements = service.list_agreements(_entity_id(grampanchayat_id))
        return jsonify({
            'success': True,
            'count': len(agreements),
            'data': [a.to_dict() for a in agreements],
        })
    finally:
        db.close()


@bp.route('/grampanchayat/<grampanchayat_id>/dashboard')
def get_grampanchayat_dashboard(grampanchayat_id):
    """Reviewed deductions with admin receipts, by category"""
    db = _session()
    try:
        aggregator = ReconciliationAggregator(DeductionRepository(db))
        return _ok(aggregator.grampanchayat_dashboard(_entity_id(grampanchayat_id)))
    finally:
        db.close()


if __name__ == '__main__':
    settings = load_settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    port = int(os.getenv('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=settings.debug)
