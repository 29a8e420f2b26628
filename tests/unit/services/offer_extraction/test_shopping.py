from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from offer_scraper.services.offer_extraction.shopping import (
    GoogleShoppingLookup,
    extract_brand_from_title,
    pick_best_match,
)

URL = "https://www.shop.com/products/chelsea-boot"
REQUESTS_POST = "offer_scraper.services.offer_extraction.shopping.requests.post"


def make_reply(payload, status_code: int = 200) -> MagicMock:
    response = MagicMock(status_code=status_code)
    response.json.return_value = payload
    return response


@pytest.mark.parametrize(
    "title, brand",
    [
        ("Nike Air Max 90 - Men's", "Nike"),
        ("APC 12 Petit Standard Jeans", "APC"),
        ("Levi's 501 Original Fit", "Levi's"),
        ("adidas samba og", None),
        ("", None),
    ],
)
def test_extract_brand_from_title(title, brand):
    assert extract_brand_from_title(title) == brand


class TestPickBestMatch:
    def test_prefers_listing_from_the_page_domain(self):
        results = [
            {"title": "Other", "link": "https://reseller.com/boot"},
            {"title": "Own", "link": "https://shop.com/products/chelsea-boot"},
        ]

        assert pick_best_match(results, URL)["title"] == "Own"

    def test_matches_store_name_in_source(self):
        results = [
            {"title": "Other", "source": "Reseller"},
            {"title": "Own", "source": "Shop Official"},
        ]

        assert pick_best_match(results, URL)["title"] == "Own"

    def test_falls_back_to_first_listing(self):
        results = ["junk", {"title": "First"}, {"title": "Second"}]

        assert pick_best_match(results, URL)["title"] == "First"


class TestGoogleShoppingLookup:
    def setup_method(self):
        self.lookup = GoogleShoppingLookup(
            api_key="serper-key", api_url="https://serper.test/shopping"
        )

    @patch(REQUESTS_POST)
    def test_builds_candidate_from_listing(self, mock_post, context):
        # Arrange
        mock_post.return_value = make_reply(
            {
                "shopping": [
                    {
                        "title": "Blundstone Chelsea Boot",
                        "source": "shop.com",
                        "thumbnail": "https://encrypted-tbn0.gstatic.com/boot.jpg",
                        "price": "$189.99",
                        "extracted_old_price": 229.99,
                    }
                ]
            }
        )

        # Act
        candidate = self.lookup.search(URL, context)

        # Assert
        assert candidate.name == "Blundstone Chelsea Boot"
        assert candidate.brand == "Blundstone"
        assert candidate.image_url == "https://encrypted-tbn0.gstatic.com/boot.jpg"
        assert candidate.sale_price == Decimal("189.99")
        assert candidate.original_price == Decimal("229.99")
        assert candidate.source == "google-shopping"
        args, kwargs = mock_post.call_args
        assert args == ("https://serper.test/shopping",)
        assert kwargs["timeout"] == 10

    @patch(REQUESTS_POST)
    def test_listing_without_image_is_ignored(self, mock_post, context):
        mock_post.return_value = make_reply({"shopping_results": [{"title": "Chelsea Boot"}]})

        assert self.lookup.search(URL, context) is None

    @patch(REQUESTS_POST)
    def test_error_status_is_soft(self, mock_post, context):
        mock_post.return_value = make_reply({}, status_code=403)

        assert self.lookup.search(URL, context) is None

    @patch(REQUESTS_POST)
    def test_invalid_json_is_soft(self, mock_post, context):
        mock_post.return_value = make_reply(None)
        mock_post.return_value.json.side_effect = ValueError("Expecting value")

        assert self.lookup.search(URL, context) is None

    @patch(REQUESTS_POST)
    def test_empty_results(self, mock_post, context):
        mock_post.return_value = make_reply({"shopping_results": []})

        assert self.lookup.search(URL, context) is None

    def test_disabled_without_key(self, context):
        lookup = GoogleShoppingLookup(api_key="serper-key")
        lookup.api_key = None

        assert lookup.enabled is False
        assert lookup.search(URL, context) is None
