import sys
from pathlib import Path
from decimal import Decimal

import pytest

# Add repo root and src to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / 'src'))

from config.settings import Settings
from api.mock_object_store import MockObjectStore
from database.db import create_db_engine, create_session_factory, init_db
from database.repository import DeductionRepository
from models.grampanchayat import Grampanchayat
from processors.deduction_ingestor import DeductionIngestor


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        upload_tmp_dir=tmp_path / "uploads",
        secret_key="test",
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = create_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return DeductionRepository(db_session)


@pytest.fixture
def store():
    return MockObjectStore()


@pytest.fixture
def grampanchayat(repo):
    return repo.save_grampanchayat(Grampanchayat(
        grampanchayat="Shirur",
        district="Pune",
        tahsil="Shirur",
        state="Maharashtra",
        gst_no="27AAAGS1234A1Z5",
        gp_mobile_number="9822000001",
        gram_adhikari_name="Suresh Patil",
        gp_agreement_amount=Decimal("250000.00"),
    ))


@pytest.fixture
def other_grampanchayat(repo):
    return repo.save_grampanchayat(Grampanchayat(
        grampanchayat="Wagholi",
        district="Pune",
        tahsil="Haveli",
        state="Maharashtra",
        gst_no="27AAAGW5678B1Z9",
        gp_mobile_number="9822000002",
        gram_adhikari_name="Anita Jadhav",
        gp_agreement_amount=Decimal("180000.00"),
    ))


@pytest.fixture
def make_payload():
    """Factory for a valid staff submission body"""
    def _make(gp_id, **overrides):
        payload = {
            'date': '2024-01-15T10:00:00',
            'gramadhikariName': 'Suresh Patil',
            'paymentMode': 'online',
            'grampanchayats': [gp_id],
            'gstEntries': [{'amount': 100, 'partyName': 'Om Traders'}],
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def ingestor(repo, store):
    return DeductionIngestor(repo, store)


@pytest.fixture
def add_record(ingestor, make_payload, grampanchayat):
    """Ingest a record for the default grampanchayat"""
    def _add(**overrides):
        gp_id = overrides.pop('gp_id', grampanchayat.id)
        return ingestor.add_deduction(make_payload(gp_id, **overrides))
    return _add


@pytest.fixture
def document(tmp_path):
    """Factory for a staged upload on disk"""
    counter = {'n': 0}

    def _make(content=b"%PDF-1.4 receipt", suffix=".pdf"):
        counter['n'] += 1
        path = tmp_path / f"staged_{counter['n']}{suffix}"
        path.write_bytes(content)
        return path
    return _make


@pytest.fixture
def flask_app(settings, store):
    from app import create_app
    app = create_app(settings, object_store=store)
    app.config['TESTING'] = True
    yield app
    app.config['DB_ENGINE'].dispose()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
