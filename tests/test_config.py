"""
Tests for client configuration.

Settings must fail fast on values that would make receipt checks or
provider windows unsafe, and ConfigSnapshot must stay immutable.
"""

import dataclasses

import pytest

from fakes import APP_ORIGIN, PAY_TYPE, PROVIDER_TEMPLATE, FakeAdapter, FakeWindowProvider
from iap_client.config import DEFAULT_PAY_TYPE, ConfigurationError, Settings
from iap_client.models.domain import AppSelf, ConfigSnapshot, get_url_origin


class TestSettings:
    """Tests for Settings validation."""

    def test_defaults_are_valid(self):
        settings = Settings()
        assert DEFAULT_PAY_TYPE in settings.pay_provider_urls
        assert settings.unload_grace_delay == 0.3
        assert settings.fake_products is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("IAP_FAKE_PRODUCTS", "true")
        monkeypatch.setenv("IAP_RECEIPT_CHECK_SITES", '["https://niceverifier.org"]')

        settings = Settings()

        assert settings.fake_products is True
        assert settings.receipt_check_sites == ["https://niceverifier.org"]

    def test_rejects_non_http_receipt_check_site(self):
        with pytest.raises(ConfigurationError, match="not an http"):
            Settings(receipt_check_sites=["ftp://niceverifier.org"])

    def test_rejects_template_without_token_slot(self):
        with pytest.raises(ConfigurationError, match="placeholder"):
            Settings(pay_provider_urls={PAY_TYPE: "https://payments.example.com/mozpay/"})

    def test_rejects_template_without_origin(self):
        with pytest.raises(ConfigurationError, match="no http"):
            Settings(pay_provider_urls={PAY_TYPE: "/mozpay/?req={jwt}"})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"pay_window_width": 0},
            {"pay_window_height": -1},
            {"unload_grace_delay": -0.1},
            {"window_poll_interval": -1},
            {"receipt_poll_attempts": 0},
        ],
    )
    def test_rejects_bad_numbers(self, overrides):
        with pytest.raises(ConfigurationError):
            Settings(**overrides)

    def test_reports_every_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(receipt_check_sites=["nope"], pay_window_width=0)
        assert "nope" in str(exc_info.value)
        assert "dimensions" in str(exc_info.value)


class TestConfigSnapshot:
    """Tests for ConfigSnapshot."""

    def test_from_settings(self):
        settings = Settings(
            receipt_check_sites=["https://NiceVerifier.org/verify/"],
            pay_provider_urls={PAY_TYPE: PROVIDER_TEMPLATE},
            fake_products=True,
            api_url_base="https://marketplace.example.com/",
        )
        adapter = FakeAdapter()

        config = ConfigSnapshot.from_settings(
            settings, adapter=adapter, app_self=AppSelf(origin=APP_ORIGIN)
        )

        assert config.allowed_verify_sites == frozenset({"https://niceverifier.org"})
        assert dict(config.pay_provider_urls) == {PAY_TYPE: PROVIDER_TEMPLATE}
        assert config.fake_products_allowed is True
        assert config.adapter is adapter
        assert config.app_self == AppSelf(origin=APP_ORIGIN)
        assert config.api_url_base == "https://marketplace.example.com"

    def test_host_origin_defaults_to_window_provider(self):
        provider = FakeWindowProvider()
        config = ConfigSnapshot.from_settings(Settings(), window_provider=provider)
        assert config.host_window_origin == provider.origin

    def test_explicit_host_origin_wins(self):
        config = ConfigSnapshot.from_settings(
            Settings(),
            window_provider=FakeWindowProvider(),
            host_window_origin="https://shop.example.com",
        )
        assert config.host_window_origin == "https://shop.example.com"

    def test_is_frozen(self, packaged_config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            packaged_config.fake_products_allowed = True

    def test_provider_urls_are_read_only(self, packaged_config):
        with pytest.raises(TypeError):
            packaged_config.pay_provider_urls["other/type"] = PROVIDER_TEMPLATE

    def test_source_mapping_changes_do_not_leak(self):
        urls = {PAY_TYPE: PROVIDER_TEMPLATE}
        config = ConfigSnapshot(allowed_verify_sites=frozenset(), pay_provider_urls=urls)
        urls["other/type"] = PROVIDER_TEMPLATE
        assert "other/type" not in config.pay_provider_urls

    def test_replace(self, packaged_config):
        changed = packaged_config.replace(fake_products_allowed=True)
        assert changed.fake_products_allowed is True
        assert packaged_config.fake_products_allowed is False
        assert changed.pay_provider_urls == packaged_config.pay_provider_urls


class TestUrlOrigin:
    """Tests for get_url_origin."""

    @pytest.mark.parametrize(
        "url,origin",
        [
            ("https://niceverifier.org/verify/", "https://niceverifier.org"),
            ("HTTP://Some-Site.com:8080/path?q=1", "http://some-site.com:8080"),
            ("app://some-app", "app://some-app"),
        ],
    )
    def test_origins(self, url, origin):
        assert get_url_origin(url) == origin

    @pytest.mark.parametrize("url", ["", "/relative/path", "niceverifier.org"])
    def test_no_origin(self, url):
        with pytest.raises(ValueError):
            get_url_origin(url)
