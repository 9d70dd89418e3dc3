"""Pytest configuration and shared fixtures."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("WRITE_RETRY_BACKOFF_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from railtrace.database import Base
from railtrace.models.domain import Material, Fault, LedgerChange
from railtrace.models.audit import AuditEvent
from railtrace.models.enums import FaultSource
from railtrace.clients.inference import Classification
from railtrace.services.errors import UpstreamError
from railtrace.services.lifecycle import MaterialLifecycle
from railtrace.services.write_coordinator import WriteCoordinator


class FakeInference:
    """Stands in for the Inference Service."""

    def __init__(self):
        self.calls = []
        self.result = Classification(component="erc", condition="ok", confidence=0.97)
        self.error = None

    def classify(self, image_ref):
        self.calls.append(image_ref)
        if self.error:
            raise self.error
        return self.result


class FakeBlobStore:
    """Stands in for the Blob Store."""

    def __init__(self):
        self.objects = {}

    def put(self, data, content_type="image/jpeg"):
        ref = f"blob-{len(self.objects) + 1}"
        self.objects[ref] = data
        return ref

    def get(self, ref):
        if ref not in self.objects:
            raise UpstreamError("blob-store", "HTTP 404")
        return self.objects[ref]


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def fake_blob_store():
    return FakeBlobStore()


@pytest.fixture
def lifecycle(db_session, fake_inference, fake_blob_store):
    return MaterialLifecycle(
        db_session,
        inference=fake_inference,
        blob_store=fake_blob_store,
        coordinator=WriteCoordinator(db_session, max_attempts=3, backoff_seconds=0),
    )


@pytest.fixture
def sample_material(lifecycle):
    """A freshly manufactured ERC, not yet installed."""
    return lifecycle.create_material(
        "EC12345",
        "ERC",
        created_by="mfr_001",
        drawing_number="RDSO/T-3701",
        material_spec="IRS T-31",
        batch_number="B-2024-07",
        manufacturer_id="MFR-9",
    )


@pytest.fixture
def detect(lifecycle):
    """Submit a raw detection the way the hardware gateway would."""
    def submit(component, condition, material_id="EC12345",
               source=FaultSource.HARDWARE_AUTO, **extra):
        raw = {"materialId": material_id, "componentType": component, "condition": condition}
        raw.update(extra)
        return lifecycle.submit_detection(raw, source=source)
    return submit
