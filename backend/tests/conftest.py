"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- Canonical CBC panels (healthy, mild, moderate, severe)
- Mocked OpenAI client and augmentation ports
- An analysis pipeline over an in-memory archive
- HTTP client for API testing
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hemoscan.dependencies import get_archive, get_pipeline
from hemoscan.main import app
from hemoscan.schemas import Augmentation, CBCSample, DietMeal, Sex
from hemoscan.services.archive import InMemoryReportArchive
from hemoscan.services.augmentation import AugmentationPayload, DietMealPayload
from hemoscan.services.pipeline import AnalysisPipeline


# =============================================================================
# CBC Sample Fixtures
# =============================================================================


def make_sample(**overrides) -> CBCSample:
    """Build a healthy female panel with selected markers overridden."""
    values = {
        "sex": Sex.FEMALE,
        "age": 30,
        "hemoglobin": 13.5,
        "rbc_count": 4.6,
        "hematocrit": 40.0,
        "mcv": 88.0,
        "mch": 29.0,
        "mchc": 33.5,
        "rdw": 13.0,
    }
    values.update(overrides)
    return CBCSample(**values)


@pytest.fixture
def healthy_sample() -> CBCSample:
    return make_sample()


@pytest.fixture
def mild_microcytic_sample() -> CBCSample:
    """Female, Hb 10.5, MCV 70, RBC 4.5: iron-deficiency pattern."""
    return make_sample(hemoglobin=10.5, rbc_count=4.5, mcv=70.0, mch=25.0, mchc=30.0, rdw=14.0)


@pytest.fixture
def thalassemia_sample() -> CBCSample:
    """Male, Hb 9.0, MCV 70, RBC 5.5: Mentzer index below 13."""
    return make_sample(
        sex=Sex.MALE, hemoglobin=9.0, rbc_count=5.5, mcv=70.0, mch=25.0, mchc=33.0, rdw=13.0
    )


@pytest.fixture
def severe_sample() -> CBCSample:
    return make_sample(sex=Sex.MALE, hemoglobin=7.0)


@pytest.fixture
def sample_payload() -> dict:
    """JSON body for a mild microcytic panel."""
    return {
        "sex": "Female",
        "age": 30,
        "hemoglobin": 10.5,
        "rbc_count": 4.5,
        "hematocrit": 33.0,
        "mcv": 70.0,
        "mch": 25.0,
        "mchc": 30.0,
        "rdw": 14.0,
    }


# =============================================================================
# Augmentation Fixtures
# =============================================================================


@pytest.fixture
def augmentation_payload() -> AugmentationPayload:
    """A well-formed structured-output payload."""
    return AugmentationPayload(
        guidance="Your low MCV and hemoglobin point to iron deficiency. Please see a physician.",
        diet=[
            DietMealPayload(meal="Breakfast", suggestions=["Fortified cereal", "Orange juice"]),
            DietMealPayload(meal="Lunch", suggestions=["Lentil salad"]),
            DietMealPayload(meal="Dinner", suggestions=["Lean beef with broccoli"]),
            DietMealPayload(meal="Snack/Tip", suggestions=["Pumpkin seeds"]),
        ],
    )


@pytest.fixture
def augmentation() -> Augmentation:
    return Augmentation(
        guidance="Mild iron deficiency pattern.",
        diet_plan=[DietMeal(meal="Breakfast", suggestions=["Oatmeal with berries"])],
    )


def create_mock_openai_client(parsed=None, output_text: str | None = None) -> AsyncMock:
    """Create a mock OpenAI client whose responses.parse returns a canned response."""
    mock_response = MagicMock()
    mock_response.output_parsed = parsed
    mock_response.output_text = output_text

    mock_client = AsyncMock()
    mock_client.responses.parse = AsyncMock(return_value=mock_response)
    return mock_client


def create_mock_augmenter(result=None, side_effect=None) -> MagicMock:
    """Create an augmentation port whose augment() returns or raises."""
    augmenter = MagicMock()
    augmenter.augment = AsyncMock(return_value=result, side_effect=side_effect)
    return augmenter


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def archive() -> InMemoryReportArchive:
    return InMemoryReportArchive()


@pytest.fixture
def pipeline(archive, augmentation) -> AnalysisPipeline:
    """Pipeline whose augmenter always succeeds."""
    return AnalysisPipeline(augmenter=create_mock_augmenter(result=augmentation), archive=archive)


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(pipeline):
    """Async test client for FastAPI app with a test pipeline.

    Overrides the pipeline and archive dependencies so API tests never reach
    OpenAI or PostgreSQL.
    """
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_archive] = lambda: pipeline.archive

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.pop(get_pipeline, None)
    app.dependency_overrides.pop(get_archive, None)
