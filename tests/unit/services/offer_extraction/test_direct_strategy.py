import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests

from offer_scraper.services.offer_extraction.models import ErrorKind, ExtractionContext
from offer_scraper.services.offer_extraction.shopping import GoogleShoppingLookup
from offer_scraper.services.offer_extraction.strategies.direct import DirectFetchStrategy
from tests.unit.fakes import ScriptedLLM

URL = "https://shop.com/products/linen-shirt"
REQUESTS_GET = "offer_scraper.services.offer_extraction.strategies.direct.requests.get"
REQUESTS_POST = "offer_scraper.services.offer_extraction.shopping.requests.post"

JSON_LD_HTML = (
    '<script type="application/ld+json">'
    + json.dumps(
        {
            "@type": "Product",
            "name": "Linen Shirt",
            "image": "https://cdn.shop.com/shirt.jpg",
            "offers": {"price": "45.00", "highPrice": "90.00"},
        }
    )
    + "</script>"
)

PLAIN_HTML = (
    '<meta property="og:image" content="https://cdn.shop.com/shirt.jpg">'
    '<h1>Linen Shirt</h1><span class="price-sale">$45.00</span><s>$90.00</s>'
)

LLM_REPLY = json.dumps(
    {
        "name": "Linen Shirt",
        "imageUrl": "https://cdn.shop.com/other.jpg",
        "originalPrice": 90,
        "salePrice": 45,
        "confidence": 80,
    }
)

MICRODATA_HTML = (
    "<h1>Linen Shirt</h1>"
    '<span itemprop="price" content="45.00">$45</span>'
    '<span itemprop="highPrice" content="90.00">$90</span>'
)

SHOPPING_RESULTS = {
    "shopping_results": [
        {
            "title": "Linen Shirt - Marketplace Listing",
            "source": "Marketplace",
            "link": "https://marketplace.com/item/1",
            "imageUrl": "https://marketplace.com/shirt.jpg",
            "price": "$39.00",
        },
        {
            "title": "Linen Shirt",
            "source": "Shop.com",
            "link": "https://shop.com/products/linen-shirt",
            "imageUrl": "https://encrypted-tbn0.gstatic.com/shirt.jpg",
            "price": "$60.00",
            "old_price": "$90.00",
        },
    ]
}


def make_response(
    html: str, status_code: int = 200, content_type: str = "text/html; charset=utf-8"
) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    response.encoding = "ISO-8859-1"
    response.apparent_encoding = "utf-8"
    response.text = html
    return response


class TestDirectFetchStrategy:
    def setup_method(self):
        self.strategy = DirectFetchStrategy()

    @patch(REQUESTS_GET)
    def test_structured_data_skips_the_model(self, mock_get, engine):
        mock_get.return_value = make_response(JSON_LD_HTML)
        llm = ScriptedLLM(LLM_REPLY)
        strategy = DirectFetchStrategy(engine=engine)

        outcome = strategy.extract(URL, ExtractionContext(llm=llm))

        assert outcome.success is True
        assert outcome.confidence == 95
        assert outcome.offer.percent_off == 50
        assert llm.calls == []
        _, kwargs = mock_get.call_args
        assert kwargs["timeout"] == 10

    @patch(REQUESTS_GET)
    def test_falls_back_to_model_without_structured_data(
        self, mock_get, engine, diagnostics_context
    ):
        # Arrange
        mock_get.return_value = make_response(PLAIN_HTML)
        diagnostics_context.llm = ScriptedLLM(LLM_REPLY)
        strategy = DirectFetchStrategy(engine=engine)

        # Act
        outcome = strategy.extract(URL, diagnostics_context)

        # Assert
        assert outcome.success is True
        assert outcome.confidence == 88
        assert outcome.offer.sale_price == Decimal("45")
        assert outcome.offer.image_url == "https://cdn.shop.com/shirt.jpg"
        assert outcome.diagnostics["extractor"] == "llm"
        assert outcome.diagnostics["phase"] == "ai-extraction"
        assert outcome.diagnostics["confidence_adjustments"] == [
            "+5: image pre-extracted from meta tags",
            "+3: discount looks reasonable",
        ]

    @patch(REQUESTS_GET)
    def test_without_model_missing_structured_data_fails(self, mock_get):
        mock_get.return_value = make_response(PLAIN_HTML)

        outcome = self.strategy.extract(URL, ExtractionContext())

        assert outcome.success is False
        assert outcome.error_kind is ErrorKind.VALIDATION_FAILURE

    @patch(REQUESTS_GET)
    def test_blocked_response_is_upstream_error(self, mock_get):
        mock_get.return_value = make_response("Access Denied", status_code=403)

        outcome = self.strategy.extract(URL, ExtractionContext())

        assert outcome.error_kind is ErrorKind.UPSTREAM_ERROR
        assert "HTTP 403" in outcome.message

    @patch(REQUESTS_GET)
    def test_rate_limited_response(self, mock_get):
        mock_get.return_value = make_response("Slow down", status_code=429)

        outcome = self.strategy.extract(URL, ExtractionContext())

        assert outcome.error_kind is ErrorKind.UPSTREAM_RATE_LIMIT

    @patch(REQUESTS_GET)
    def test_timeout_is_navigation_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectTimeout("timed out")

        outcome = self.strategy.extract(URL, ExtractionContext())

        assert outcome.error_kind is ErrorKind.NAVIGATION_TIMEOUT

    @patch(REQUESTS_GET)
    def test_partial_microdata_prices_override_the_model(self, mock_get, engine):
        # Arrange
        mock_get.return_value = make_response(MICRODATA_HTML)
        llm = ScriptedLLM(
            json.dumps(
                {
                    "name": "Linen Shirt",
                    "imageUrl": "https://cdn.shop.com/shirt.jpg",
                    "originalPrice": 100,
                    "salePrice": 50,
                    "confidence": 70,
                }
            )
        )
        strategy = DirectFetchStrategy(engine=engine)

        # Act
        outcome = strategy.extract(URL, ExtractionContext(llm=llm))

        # Assert
        assert outcome.success is True
        assert outcome.offer.sale_price == Decimal("45.00")
        assert outcome.offer.original_price == Decimal("90.00")
        assert outcome.offer.image_url == "https://cdn.shop.com/shirt.jpg"
        assert outcome.confidence == 88
        assert "salePrice=45.00, originalPrice=90.00" in llm.calls[0][1]["content"]

    @patch(REQUESTS_GET)
    def test_partial_json_ld_name_overrides_the_model(self, mock_get, engine, diagnostics_context):
        html = (
            '<script type="application/ld+json">'
            + json.dumps({"@type": "Product", "name": "Linen Shirt", "offers": {"price": "45.00"}})
            + "</script>"
        )
        mock_get.return_value = make_response(html)
        diagnostics_context.llm = ScriptedLLM(
            json.dumps(
                {
                    "name": "Shirt",
                    "imageUrl": "https://cdn.shop.com/shirt.jpg",
                    "salePrice": 45,
                    "confidence": 70,
                }
            )
        )
        strategy = DirectFetchStrategy(engine=engine)

        outcome = strategy.extract(URL, diagnostics_context)

        assert outcome.offer.name == "Linen Shirt"
        assert outcome.confidence == 80
        assert outcome.diagnostics["confidence_adjustments"] == ["+10: product name from JSON-LD"]

    @patch(REQUESTS_GET)
    def test_missing_charset_uses_detected_encoding(self, mock_get):
        mock_get.return_value = make_response(JSON_LD_HTML, content_type="text/html")

        self.strategy.extract(URL, ExtractionContext())

        assert mock_get.return_value.encoding == "utf-8"

    @patch(REQUESTS_GET)
    def test_declared_charset_wins(self, mock_get):
        mock_get.return_value = make_response(
            JSON_LD_HTML, content_type="text/html; charset=windows-1252"
        )

        self.strategy.extract(URL, ExtractionContext())

        assert mock_get.return_value.encoding == "cp1252"


class TestGoogleShoppingHybrid:
    def setup_method(self):
        self.lookup = GoogleShoppingLookup(api_key="serper-key")

    @patch(REQUESTS_GET)
    @patch(REQUESTS_POST)
    def test_listing_identity_with_live_page_price(
        self, mock_post, mock_get, engine, diagnostics_context
    ):
        # Arrange
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = SHOPPING_RESULTS
        mock_get.return_value = make_response(PLAIN_HTML)
        strategy = DirectFetchStrategy(engine=engine, shopping_lookup=self.lookup)

        # Act
        outcome = strategy.extract(URL, diagnostics_context)

        # Assert
        assert outcome.success is True
        assert outcome.confidence == 90
        assert outcome.offer.name == "Linen Shirt"
        assert outcome.offer.image_url == "https://encrypted-tbn0.gstatic.com/shirt.jpg"
        assert outcome.offer.sale_price == Decimal("45.00")
        assert outcome.offer.original_price == Decimal("90.00")
        assert outcome.offer.percent_off == 50
        assert outcome.diagnostics["phase"] == "google-shopping-hybrid"
        args, kwargs = mock_post.call_args
        assert args == ("https://google.serper.dev/shopping",)
        assert kwargs["headers"]["X-API-KEY"] == "serper-key"
        assert kwargs["json"] == {"q": URL, "num": 3}

    @patch(REQUESTS_GET)
    @patch(REQUESTS_POST)
    def test_page_without_live_price_falls_back_to_structured_data(
        self, mock_post, mock_get, engine
    ):
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = SHOPPING_RESULTS
        mock_get.return_value = make_response("<h1>Linen Shirt</h1>")
        strategy = DirectFetchStrategy(engine=engine, shopping_lookup=self.lookup)

        outcome = strategy.extract(URL, ExtractionContext())

        assert outcome.success is False
        assert outcome.error_kind is ErrorKind.VALIDATION_FAILURE

    @patch(REQUESTS_GET)
    @patch(REQUESTS_POST)
    def test_lookup_failure_is_soft(self, mock_post, mock_get, engine):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")
        mock_get.return_value = make_response(JSON_LD_HTML)
        strategy = DirectFetchStrategy(engine=engine, shopping_lookup=self.lookup)

        outcome = strategy.extract(URL, ExtractionContext())

        assert outcome.success is True
        assert outcome.confidence == 95

    @patch(REQUESTS_GET)
    @patch(REQUESTS_POST)
    def test_without_key_no_lookup_is_made(self, mock_post, mock_get, engine):
        mock_get.return_value = make_response(JSON_LD_HTML)
        strategy = DirectFetchStrategy(
            engine=engine, shopping_lookup=GoogleShoppingLookup(api_key="serper-key")
        )
        strategy.shopping_lookup.api_key = None

        outcome = strategy.extract(URL, ExtractionContext())

        assert outcome.success is True
        mock_post.assert_not_called()
