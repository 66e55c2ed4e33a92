import json
from io import BytesIO

import openpyxl
import pytest

from config.settings import EXPORT_FILENAME, XLSX_MIMETYPE

GP_PAYLOAD = {
    'grampanchayat': 'Shirur',
    'district': 'Pune',
    'tahsil': 'Shirur',
    'state': 'Maharashtra',
    'gstNo': '27aaags1234a1z5',
    'gpMobileNumber': '9822000001',
    'gramAdhikariName': 'Suresh Patil',
    'gpAgreementAmount': 250000,
}


@pytest.fixture
def gp_id(client):
    response = client.post('/api/admin/add-gramPanchayat', json=GP_PAYLOAD)
    assert response.status_code == 201
    return response.get_json()['data']['_id']


def _add(client, gp_id, **overrides):
    body = {
        'date': '2024-01-15',
        'gramadhikariName': 'Suresh Patil',
        'paymentMode': 'online',
        'grampanchayats': [gp_id],
        'gstEntries': [{'amount': 100, 'partyName': 'Om Traders'}],
    }
    body.update(overrides)
    return client.post('/api/staff/add-deduction', json=body)


def test_testing_route(client):
    response = client.get('/api/testing')
    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'message': 'API is working'}


def test_register_and_list_grampanchayats(client, gp_id):
    data = client.get('/api/admin/allGrampanchayats').get_json()['data']
    assert len(data) == 1
    assert data[0]['_id'] == gp_id
    assert data[0]['gstNo'] == '27AAAGS1234A1Z5'

    duplicate = client.post('/api/admin/add-gramPanchayat', json=GP_PAYLOAD)
    assert duplicate.status_code == 400
    assert duplicate.get_json()['success'] is False


def test_register_grampanchayat_validation(client):
    response = client.post('/api/admin/add-gramPanchayat', json=dict(GP_PAYLOAD, gstNo='SHORT'))
    assert response.status_code == 400

    response = client.post('/api/admin/add-gramPanchayat', json={'grampanchayat': 'X'})
    assert response.status_code == 400
    assert 'district' in response.get_json()['message']


def test_add_deduction_json(client, gp_id):
    response = _add(client, gp_id, gstEntries=[{'amount': 100}, {'amount': 250}])
    assert response.status_code == 201

    body = response.get_json()
    assert body['success'] is True
    assert body['message'] == 'Deduction record added successfully'
    assert body['data']['totalAmount'] == 350
    assert body['data']['seenByAdmin'] is False
    assert body['data']['grampanchayats'][0]['_id'] == gp_id


def test_add_deduction_multipart_with_document(client, gp_id, store, settings):
    response = client.post('/api/staff/add-deduction', data={
        'date': '2024-01-15',
        'gramadhikariName': 'Suresh Patil',
        'paymentMode': 'cheque',
        'checkNo': '102030',
        'grampanchayats': str(gp_id),
        'gstEntries': json.dumps([{'amount': 100, 'partyName': 'A'}]),
        'itEntries': json.dumps([{'amount': 25, 'partyName': 'B', 'pan': 'ABCDE1234F'}]),
        'file': (BytesIO(b'%PDF-1.4'), 'receipt.pdf'),
    }, content_type='multipart/form-data')

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['totalAmount'] == 125
    assert data['checkNo'] == '102030'
    assert data['itEntries'] == [{'amount': 25.0, 'partyName': 'B', 'pan': 'ABCDE1234F'}]
    assert data['document']['public_id'] in store.documents
    # Staged upload is gone
    assert list(settings.upload_tmp_dir.iterdir()) == []


def test_add_deduction_multipart_repeated_total(client, gp_id):
    response = client.post('/api/staff/add-deduction', data={
        'date': '2024-01-15',
        'gramadhikariName': 'Suresh Patil',
        'paymentMode': 'online',
        'grampanchayats': str(gp_id),
        'gstEntries': json.dumps([{'amount': 100}]),
        'totalAmount': ['120', '130'],
    }, content_type='multipart/form-data')
    assert response.status_code == 201
    assert response.get_json()['data']['totalAmount'] == 120


def test_add_deduction_validation_errors(client, gp_id, store, settings):
    response = _add(client, gp_id, paymentMode='cheque')
    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'message': 'Check number is required for cheque payments'}

    response = client.post('/api/staff/add-deduction', data={
        'date': '2024-01-15',
        'gramadhikariName': 'Suresh Patil',
        'paymentMode': 'online',
        'grampanchayats': str(gp_id),
        'file': (BytesIO(b'%PDF-1.4'), 'receipt.pdf'),
    }, content_type='multipart/form-data')
    assert response.status_code == 400
    assert store.uploads == []
    assert list(settings.upload_tmp_dir.iterdir()) == []


def test_add_deduction_unknown_grampanchayat(client, gp_id):
    response = _add(client, gp_id, grampanchayats=[gp_id + 100])
    assert response.status_code == 404


def test_upload_failure_is_500_envelope(client, gp_id, store):
    store.fail_uploads = True
    response = client.post('/api/staff/add-deduction', data={
        'date': '2024-01-15',
        'gramadhikariName': 'Suresh Patil',
        'paymentMode': 'online',
        'grampanchayats': str(gp_id),
        'gstEntries': json.dumps([{'amount': 100}]),
        'file': (BytesIO(b'%PDF-1.4'), 'receipt.pdf'),
    }, content_type='multipart/form-data')

    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert body['message'] == 'Failed to upload document'


def test_admin_listing_with_pagination_and_summary(client, gp_id):
    for day in range(1, 26):
        assert _add(client, gp_id, date=f'2024-03-{day:02d}').status_code == 201

    response = client.get(f'/api/admin/getAllDeductions/{gp_id}?page=3&limit=10')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert len(data['deductions']) == 5
    assert data['pagination']['totalPages'] == 3
    assert data['pagination']['hasNextPage'] is False
    assert data['pagination']['hasPrevPage'] is True
    assert data['summary']['totalGST'] == 2500
    assert data['summary']['grandTotal'] == 2500


def test_admin_listing_bad_arguments(client, gp_id):
    assert client.get('/api/admin/getAllDeductions/abc').status_code == 400
    assert client.get(f'/api/admin/getAllDeductions/{gp_id}?page=0').status_code == 400

    empty = client.get('/api/admin/getAllDeductions/999').get_json()['data']
    assert empty['deductions'] == []
    assert empty['pagination']['total'] == 0


def test_staff_listing_across_grampanchayats(client, gp_id):
    other = client.post('/api/admin/add-gramPanchayat',
                        json=dict(GP_PAYLOAD, gstNo='27AAAGW5678B1Z9', grampanchayat='Wagholi'))
    other_id = other.get_json()['data']['_id']
    _add(client, gp_id)
    _add(client, other_id)

    everything = client.get('/api/staff/getAllDeductions').get_json()['data']
    assert everything['pagination']['total'] == 2

    narrowed = client.get(f'/api/staff/getAllDeductions?grampanchayat={other_id}').get_json()['data']
    assert narrowed['pagination']['total'] == 1
    assert narrowed['deductions'][0]['grampanchayats'][0]['_id'] == other_id


def test_admin_review_flow(client, gp_id, store):
    record_id = _add(client, gp_id).get_json()['data']['_id']
    url = f'/api/admin/updateDeductionByAdmin/{record_id}'

    response = client.put(url, json={})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'No update data provided'

    response = client.put(url, data={'document': (BytesIO(b'first'), 'first.pdf')},
                          content_type='multipart/form-data')
    assert response.status_code == 200
    first_id = response.get_json()['data']['uploadDocumentbyAdmin']['public_id']
    assert response.get_json()['data']['seenByAdmin'] is False

    response = client.put(url, data={'seenByAdmin': 'true', 'document': (BytesIO(b'second'), 'second.pdf')},
                          content_type='multipart/form-data')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['seenByAdmin'] is True
    assert data['uploadDocumentbyAdmin']['public_id'] != first_id
    assert store.deleted == [first_id]

    assert client.put(url, json={'seenByAdmin': False}).status_code == 400
    assert client.put('/api/admin/updateDeductionByAdmin/9999', json={'seenByAdmin': True}).status_code == 404


def test_dashboard(client, gp_id):
    record_id = _add(client, gp_id, gstEntries=[{'amount': 500}]).get_json()['data']['_id']
    _add(client, gp_id, gstEntries=[{'amount': 70}])
    client.put(f'/api/admin/updateDeductionByAdmin/{record_id}',
               data={'seenByAdmin': 'true', 'document': (BytesIO(b'ok'), 'ok.pdf')},
               content_type='multipart/form-data')

    response = client.get(f'/api/grampanchayat/{gp_id}/dashboard')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['gst'] == {'totalAmount': 500, 'count': 1}
    assert data['summary'] == {'totalRecords': 1, 'grandTotal': 500}

    assert client.get('/api/grampanchayat/999/dashboard').status_code == 404
    assert client.get('/api/grampanchayat/abc/dashboard').status_code == 400


def test_export(client, gp_id):
    _add(client, gp_id, gstEntries=[{'amount': 100}, {'amount': 20}])

    response = client.get(f'/api/admin/exportAllDeductionData/{gp_id}')
    assert response.status_code == 200
    assert response.mimetype == XLSX_MIMETYPE
    assert EXPORT_FILENAME in response.headers['Content-Disposition']

    ws = openpyxl.load_workbook(BytesIO(response.data)).active
    assert ws.max_row == 2
    assert ws['A2'].value == '1/15/2024'


def test_unknown_route_uses_envelope(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_unexpected_error_is_500_envelope(client, gp_id, monkeypatch):
    from processors.deduction_query import DeductionQueryService

    def boom(self, *args, **kwargs):
        raise RuntimeError("kaboom")
    monkeypatch.setattr(DeductionQueryService, 'list_deductions', boom)

    response = client.get(f'/api/admin/getAllDeductions/{gp_id}')
    assert response.status_code == 500
    assert response.get_json() == {'success': False, 'message': 'Internal Server Error'}


def test_get_single_grampanchayat(client, gp_id):
    response = client.get(f'/api/staff/getSingleGrampanchayatById/{gp_id}')
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['_id'] == gp_id
    assert data['gstNo'] == '27AAAGS1234A1Z5'
    assert data['gpAgreementAmount'] == 250000


@pytest.mark.parametrize('suffix', ['999', 'abc'])
def test_get_single_grampanchayat_not_found(client, gp_id, suffix):
    response = client.get(f'/api/staff/getSingleGrampanchayatById/{suffix}')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'message': 'Grampanchayat not found'}


def test_agreement_status_lifecycle(client, gp_id, store, settings):
    created = client.post('/api/staff/agreement-status', data={
        'financialYear': '2023-2024',
        'date': '2023-04-10',
        'grampanchayats': str(gp_id),
        'oCCopyReceived': 'true',
        'agreementAmount': '250000',
        'uploadedOCCopy': (BytesIO(b'%PDF-1.4'), 'oc_copy.pdf'),
    }, content_type='multipart/form-data')

    assert created.status_code == 201
    agreement = created.get_json()['data']
    assert agreement['oCCopyReceived'] is True
    assert agreement['agreementAmount'] == 250000
    assert agreement['uploadedOCCopy']['public_id'] in store.documents
    assert list(settings.upload_tmp_dir.iterdir()) == []

    duplicate = client.post('/api/staff/agreement-status', json={
        'financialYear': '2023-2024', 'date': '2023-05-01', 'grampanchayats': gp_id,
    })
    assert duplicate.status_code == 400

    listed = client.get(f'/api/staff/agreement-status/{gp_id}').get_json()['data']
    assert [a['_id'] for a in listed] == [agreement['_id']]

    updated = client.put(f"/api/staff/agreement-status/{agreement['_id']}", json={
        'paymentReceived': True, 'paymentReceivedDate': '2024-01-20',
    })
    assert updated.status_code == 200
    assert updated.get_json()['data']['paymentReceived'] is True

    admin = client.get(f'/api/admin/agreements/{gp_id}').get_json()
    assert admin['success'] is True
    assert admin['count'] == 1
    assert admin['data'][0]['paymentReceivedDate'] == '2024-01-20T00:00:00'

    deleted = client.delete(f"/api/staff/agreement-status/{agreement['_id']}")
    assert deleted.status_code == 200
    assert store.deleted == [agreement['uploadedOCCopy']['public_id']]
    assert client.get(f'/api/admin/agreements/{gp_id}').get_json()['count'] == 0


def test_agreement_status_errors(client, gp_id, settings):
    invalid = client.post('/api/staff/agreement-status', data={
        'financialYear': '2023-24',
        'date': '2023-04-10',
        'grampanchayats': str(gp_id),
        'uploadedOCCopy': (BytesIO(b'%PDF-1.4'), 'oc_copy.pdf'),
    }, content_type='multipart/form-data')
    assert invalid.status_code == 400
    assert invalid.get_json()['message'] == "Financial year must be in format YYYY-YYYY"
    assert list(settings.upload_tmp_dir.iterdir()) == []

    assert client.put('/api/staff/agreement-status/999', json={'paymentReceived': True}).status_code == 404
    assert client.delete('/api/staff/agreement-status/999').status_code == 404
    assert client.get('/api/admin/agreements/abc').status_code == 400


def test_missing_credentials_outside_debug_is_logged_as_error(settings, caplog):
    from app import build_object_store
    from api.mock_object_store import MockObjectStore

    with caplog.at_level('ERROR', logger='app'):
        store = build_object_store(settings)

    assert isinstance(store, MockObjectStore)
    assert store.retain is False
    assert any(r.levelname == 'ERROR' and 'Cloudinary' in r.getMessage() for r in caplog.records)


def test_built_object_store_is_closed_at_exit(settings, monkeypatch):
    import app as app_module

    registered = []
    monkeypatch.setattr(app_module.atexit, 'register', registered.append)

    flask_app = app_module.create_app(settings)
    try:
        assert registered == [flask_app.config['OBJECT_STORE'].close]
    finally:
        flask_app.config['DB_ENGINE'].dispose()


def test_injected_object_store_is_not_registered_for_exit(settings, store, monkeypatch):
    import app as app_module

    registered = []
    monkeypatch.setattr(app_module.atexit, 'register', registered.append)

    flask_app = app_module.create_app(settings, object_store=store)
    flask_app.config['DB_ENGINE'].dispose()
    assert registered == []
