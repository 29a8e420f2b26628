from decimal import Decimal

import pytest

from offer_scraper.services.offer_extraction.models import ErrorKind, InvalidUrl
from offer_scraper.services.offer_extraction.utils import (
    compute_percent_off,
    first_json_object,
    normalize_hostname,
    resolve_url,
    to_decimal,
    validate_url,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$128.00", Decimal("128.00")),
        ("$1,299.00", Decimal("1299.00")),
        ("1.299,00 €", Decimal("1299.00")),
        ("€12,5", Decimal("12.5")),
        ("1,299", Decimal("1299")),
        ("Now $89.99!", Decimal("89.99")),
        (128, Decimal("128")),
        (Decimal("42.10"), Decimal("42.10")),
    ],
)
def test_to_decimal_parses_common_price_formats(raw, expected):
    assert to_decimal(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "Sold out", True, float("nan")])
def test_to_decimal_returns_none_for_non_prices(raw):
    assert to_decimal(raw) is None


class TestComputePercentOff:
    def test_half_off(self):
        assert compute_percent_off(Decimal("400"), Decimal("200")) == 50

    def test_rounds_half_up(self):
        assert compute_percent_off(Decimal("8"), Decimal("7")) == 13
        assert compute_percent_off(Decimal("3"), Decimal("2")) == 33

    def test_zero_without_a_valid_pair(self):
        assert compute_percent_off(None, Decimal("10")) == 0
        assert compute_percent_off(Decimal("300"), Decimal("300")) == 0
        assert compute_percent_off(Decimal("100"), Decimal("150")) == 0


class TestValidateUrl:
    def test_accepts_public_https_url(self):
        validate_url("https://www.example-store.com/products/ankle-boot")

    @pytest.mark.parametrize(
        "url",
        [
            "ftp://shop.com/item",
            "not a url",
            "http://localhost:8000/admin",
            "http://127.0.0.1/",
            "http://10.0.0.5/product",
            "http://192.168.1.10/product",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/",
        ],
    )
    def test_rejects_unsafe_urls(self, url):
        with pytest.raises(InvalidUrl) as exc_info:
            validate_url(url)

        assert exc_info.value.kind is ErrorKind.INVALID_URL


def test_normalize_hostname_strips_www_and_case():
    assert normalize_hostname("https://WWW.Shop.com/a?b=1") == "shop.com"
    assert normalize_hostname("https://cdn.shop.com/a") == "cdn.shop.com"
    assert normalize_hostname("nonsense") == "nonsense"


def test_resolve_url_makes_relative_assets_absolute():
    page = "https://shop.com/products/boot"

    assert resolve_url("/img/boot.jpg", page) == "https://shop.com/img/boot.jpg"
    assert resolve_url("//cdn.shop.com/boot.jpg", page) == "https://cdn.shop.com/boot.jpg"
    assert resolve_url("https://cdn.shop.com/a.jpg", page) == "https://cdn.shop.com/a.jpg"
    assert resolve_url(None, page) is None


class TestFirstJsonObject:
    def test_reads_object_inside_code_fence(self):
        reply = 'Sure, here it is:\n```json\n{"name": "Boot", "salePrice": 128}\n```'

        assert first_json_object(reply) == {"name": "Boot", "salePrice": 128}

    def test_skips_braces_that_are_not_json(self):
        reply = 'Use {placeholder} values. {"salePrice": 10, "meta": {"a": 1}}'

        assert first_json_object(reply) == {"salePrice": 10, "meta": {"a": 1}}

    def test_returns_none_without_an_object(self):
        assert first_json_object("I could not find a product.") is None
        assert first_json_object("") is None
