"""Shared fixtures: in-memory database, analysis context and API test client."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from safescan.api.app import register_exception_handlers
from safescan.api.dependencies import (
    get_ai_classifier,
    get_analysis_context,
    get_ocr_service,
)
from safescan.api.routers import ai, dataset, lookup, scan, scans
from safescan.config import Settings
from safescan.models import Base, DatasetRow, get_db
from safescan.services.ai_classifier import AIClassifierService
from safescan.services.analysis import build_context
from safescan.services.errors import OCRUnavailableError
from safescan.services.reference_matcher import load_reference_table


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "ai_service_url": None,
        "ai_service_api_key": None,
        "ai_api_key": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeOCR:
    def __init__(self, text: Optional[str] = None):
        self.text = text
        self.calls = 0

    def extract_text(self, image_bytes: bytes) -> str:
        self.calls += 1
        if self.text is None:
            raise OCRUnavailableError("Tesseract engine is not installed")
        return self.text


@pytest.fixture(scope="function")
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_connection(db_engine):
    connection = db_engine.connect()
    transaction = connection.begin()
    yield connection
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def db_session(db_connection):
    session = Session(bind=db_connection)
    yield session
    session.close()


@pytest.fixture(scope="function")
def session_factory(db_connection):
    def factory() -> Session:
        return Session(bind=db_connection)

    return factory


@pytest.fixture
def add_dataset_rows(db_session: Session):
    def add(*rows: dict) -> None:
        for row in rows:
            db_session.add(DatasetRow(**row))
        db_session.commit()

    return add


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def reference_table():
    return load_reference_table()


@pytest.fixture
def analysis_context(test_settings, session_factory, reference_table):
    return build_context(
        settings=test_settings,
        session_factory=session_factory,
        reference_table=reference_table,
    )


@pytest.fixture
def fake_ocr() -> FakeOCR:
    return FakeOCR(text="Ingredients: Aqua, Glycerin, Parfum, Methylparaben. Directions: apply daily.")


@pytest.fixture(scope="function")
def test_app():
    @asynccontextmanager
    async def test_lifespan(app: FastAPI) -> AsyncGenerator:
        yield

    app = FastAPI(
        title="SafeScan Test",
        description="Cosmetic ingredient risk analysis",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.include_router(scan.router, prefix="/api/v1/scan", tags=["scan"])
    app.include_router(lookup.router, prefix="/api/v1/lookup", tags=["lookup"])
    app.include_router(ai.router, prefix="/api/v1/ai", tags=["ai"])
    app.include_router(scans.router, prefix="/api/v1/scans", tags=["scans"])
    app.include_router(dataset.router, prefix="/api/v1/dataset", tags=["dataset"])
    register_exception_handlers(app)

    @app.get("/")
    async def root():
        return {
            "name": "SafeScan",
            "version": "0.1.0",
            "status": "running",
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


@pytest.fixture
def ai_classifier(test_settings) -> AIClassifierService:
    return AIClassifierService(test_settings)


@pytest.fixture(scope="function")
def client(db_session: Session, test_app: FastAPI, analysis_context, fake_ocr, ai_classifier):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_analysis_context] = lambda: analysis_context
    test_app.dependency_overrides[get_ocr_service] = lambda: fake_ocr
    test_app.dependency_overrides[get_ai_classifier] = lambda: ai_classifier
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()
