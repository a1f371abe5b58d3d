"""
Tests for the Receipt Verifier.

Covers structural checks, test receipts, verification authority allowlist and
product origin binding for packaged and hosted apps.
"""

import base64

import pytest

from fakes import APP_ORIGIN, SITE_ORIGIN, make_raw_token, make_receipt
from iap_client.exceptions import InvalidReceiptError, TestReceiptNotAllowedError
from iap_client.models.domain import AppSelf, Product
from iap_client.services.receipt_verifier import verify_receipt

some_product = Product("some-uuid")


class TestMalformedReceipts:
    """Receipts that are not well formed are invalid."""

    def test_fails_on_non_strings(self, packaged_config):
        with pytest.raises(InvalidReceiptError):
            verify_receipt({"not": "a receipt"}, some_product, packaged_config)

    def test_fails_on_too_many_key_segments(self, packaged_config):
        with pytest.raises(InvalidReceiptError):
            verify_receipt("one~too~many", some_product, packaged_config)

    def test_fails_on_not_enough_segments(self, packaged_config):
        with pytest.raises(InvalidReceiptError):
            verify_receipt("one.two", some_product, packaged_config)

    def test_fails_on_invalid_base64(self, packaged_config):
        with pytest.raises(InvalidReceiptError):
            verify_receipt("jwtAlgo.not%valid&&base64.jwtSig", some_product, packaged_config)

    def test_fails_on_invalid_json(self, packaged_config):
        payload = base64.b64encode(b"^not valid JSON").decode()
        with pytest.raises(InvalidReceiptError):
            verify_receipt(f"jwtAlgo.{payload}.jwtSig", some_product, packaged_config)

    def test_fails_on_missing_product_url(self, packaged_config):
        with pytest.raises(InvalidReceiptError, match="product URL"):
            verify_receipt(make_receipt(None), some_product, packaged_config)

    def test_fails_on_missing_storedata(self, packaged_config):
        token = make_raw_token({"product": {}, "verify": "https://niceverifier.org/verify/"})
        with pytest.raises(InvalidReceiptError, match="storedata"):
            verify_receipt(token, some_product, packaged_config)

    def test_fails_on_missing_product(self, packaged_config):
        token = make_raw_token({"verify": "https://niceverifier.org/verify/"})
        with pytest.raises(InvalidReceiptError, match="storedata"):
            verify_receipt(token, some_product, packaged_config)

    def test_fails_on_non_string_storedata(self, packaged_config):
        with pytest.raises(InvalidReceiptError, match="storedata"):
            verify_receipt(make_receipt(storedata={}), some_product, packaged_config)

    @pytest.mark.parametrize("verify", [None, "", "not a url", "ftp://niceverifier.org/", 42])
    def test_fails_on_malformed_verify_url(self, packaged_config, verify):
        token = make_raw_token(
            {"product": {"url": APP_ORIGIN, "storedata": "x"}, "verify": verify}
        )
        with pytest.raises(InvalidReceiptError, match="verify URL"):
            verify_receipt(token, some_product, packaged_config)


class TestVerificationAuthority:
    """Real receipts must name an allowed receipt check site."""

    def test_fails_on_disallowed_receipt_check_url(self, packaged_config):
        token = make_receipt(verify="http://mykracksite.ru")
        with pytest.raises(InvalidReceiptError, match="not allowed"):
            verify_receipt(token, some_product, packaged_config)

    def test_same_host_other_scheme_is_not_allowed(self, packaged_config):
        token = make_receipt(verify="http://niceverifier.org/verify/")
        with pytest.raises(InvalidReceiptError, match="not allowed"):
            verify_receipt(token, some_product, packaged_config)

    def test_allowed_site_with_path(self, packaged_config):
        claims = verify_receipt(
            make_receipt(verify="https://niceverifier.org/verify/deep/path?x=1"),
            some_product,
            packaged_config,
        )
        assert claims["product"]["url"] == APP_ORIGIN


class TestTestReceipts:
    """Test receipts only work in test mode."""

    def test_allows_wrong_product_urls_for_test_receipts(self, packaged_config):
        config = packaged_config.replace(fake_products_allowed=True)
        claims = verify_receipt(
            make_receipt("wrong-app", typ="test-receipt"), some_product, config
        )
        assert claims["typ"] == "test-receipt"

    def test_test_receipts_skip_verify_site_allowlist(self, packaged_config):
        config = packaged_config.replace(fake_products_allowed=True)
        verify_receipt(
            make_receipt(typ="test-receipt", verify="https://anything.example/verify"),
            some_product,
            config,
        )

    def test_disallows_test_receipts_when_not_testing(self, packaged_config):
        with pytest.raises(TestReceiptNotAllowedError) as exc_info:
            verify_receipt(make_receipt(typ="test-receipt"), some_product, packaged_config)

        assert isinstance(exc_info.value.claims, dict)
        assert exc_info.value.claims["typ"] == "test-receipt"

    def test_test_receipts_still_need_storedata(self, packaged_config):
        config = packaged_config.replace(fake_products_allowed=True)
        with pytest.raises(InvalidReceiptError):
            verify_receipt(
                make_receipt(typ="test-receipt", storedata=None), some_product, config
            )


class TestPackagedAppOrigins:
    """Packaged apps bind receipts to the app's own origin."""

    def test_fails_on_foreign_product_url(self, packaged_config):
        with pytest.raises(InvalidReceiptError, match="app origin"):
            verify_receipt(make_receipt("wrong-app"), some_product, packaged_config)

    def test_handles_non_prefixed_app_origins(self, packaged_config):
        config = packaged_config.replace(app_self=AppSelf(origin="app://the-origin"))
        verify_receipt(make_receipt("the-origin"), some_product, config)

    def test_handles_properly_prefixed_app_origins(self, packaged_config):
        config = packaged_config.replace(app_self=AppSelf(origin="app://the-app"))
        verify_receipt(make_receipt("app://the-app"), some_product, config)

    def test_handles_http_hosted_app_origins(self, packaged_config):
        config = packaged_config.replace(app_self=AppSelf(origin="http://hosted-app"))
        verify_receipt(make_receipt("http://hosted-app"), some_product, config)

    def test_handles_https_hosted_app_origins(self, packaged_config):
        config = packaged_config.replace(app_self=AppSelf(origin="https://hosted-app"))
        verify_receipt(make_receipt("https://hosted-app"), some_product, config)

    def test_other_scheme_for_same_host_fails(self, packaged_config):
        config = packaged_config.replace(app_self=AppSelf(origin="app://the-app"))
        with pytest.raises(InvalidReceiptError):
            verify_receipt(make_receipt("https://the-app"), some_product, config)

    def test_app_mode_wins_over_site_origin(self, packaged_config):
        """With an app identity the hosting page's origin is irrelevant."""
        config = packaged_config.replace(host_window_origin=SITE_ORIGIN)
        with pytest.raises(InvalidReceiptError):
            verify_receipt(make_receipt(SITE_ORIGIN), some_product, config)


class TestHostedAppOrigins:
    """Web sites bind receipts to the hosting page's origin."""

    def test_fails_on_foreign_product_url(self, hosted_config):
        with pytest.raises(InvalidReceiptError, match="site origin"):
            verify_receipt(make_receipt("http://wrong-site.com"), some_product, hosted_config)

    def test_validates_hosted_app_product_urls(self, hosted_config):
        claims = verify_receipt(make_receipt(SITE_ORIGIN), some_product, hosted_config)
        assert claims["product"]["url"] == SITE_ORIGIN

    def test_requires_exact_match(self, hosted_config):
        """Scheme stripping only applies to packaged apps."""
        with pytest.raises(InvalidReceiptError):
            verify_receipt(make_receipt("some-site.com"), some_product, hosted_config)

    def test_fails_without_any_origin(self, hosted_config):
        config = hosted_config.replace(host_window_origin=None)
        with pytest.raises(InvalidReceiptError, match="no app or site origin"):
            verify_receipt(make_receipt(SITE_ORIGIN), some_product, config)
