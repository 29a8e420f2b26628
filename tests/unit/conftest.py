import pytest

from offer_scraper.services.offer_extraction.confidence import ValidationEngine
from offer_scraper.services.offer_extraction.models import ExtractionContext


@pytest.fixture()
def engine() -> ValidationEngine:
    return ValidationEngine(
        placeholder_hosts=["example.com", "placeholder.com", "via.placeholder.com", "placehold.it"]
    )


@pytest.fixture()
def context() -> ExtractionContext:
    return ExtractionContext()


@pytest.fixture()
def diagnostics_context() -> ExtractionContext:
    return ExtractionContext(enable_diagnostics=True)
