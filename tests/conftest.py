"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from models.database import Database

BASE_TS = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def seed_readings(temp_db):
    """Insert daily readings for one item, oldest first. Returns the next free timestamp."""
    def _seed(tipo, item, values, start=BASE_TS):
        records = [{
            "tipo_monitoramento": tipo,
            "identificador_item": item,
            "timestamp": start + timedelta(days=i),
            "value": v,
        } for i, v in enumerate(values)]
        temp_db.save_readings(records)
        return start + timedelta(days=len(values))
    return _seed


@pytest.fixture
def app_config(temp_db, tmp_path):
    """Default config pointed at the scratch database."""
    from config import load_config
    config = load_config()
    config["database"]["path"] = temp_db.db_path
    config["alerts"]["log_path"] = str(tmp_path / "alerts.jsonl")
    config["alerts"]["persist_retry_delay"] = 0
    return config


@pytest.fixture
def components(app_config):
    """Fully wired components over a scratch database."""
    from main import build_components
    c = build_components(app_config)
    yield c
    c["db"].close()
