"""
Pytest Configuration and Centralized Fixtures.

Configuration snapshots for packaged and hosted apps, plus the fakes from
fakes.py wired into ready-to-use fixtures.
"""

import pytest

from fakes import (
    APP_ORIGIN,
    PAY_TYPE,
    PROVIDER_TEMPLATE,
    RECEIPT_CHECK_SITE,
    SITE_ORIGIN,
    FakeAdapter,
    FakeScheduler,
    FakeWindowProvider,
    OutcomeRecorder,
)
from iap_client.models.domain import AppSelf, ConfigSnapshot

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def packaged_config() -> ConfigSnapshot:
    """Configuration for an installed app."""
    return ConfigSnapshot(
        allowed_verify_sites=frozenset({RECEIPT_CHECK_SITE}),
        pay_provider_urls={PAY_TYPE: PROVIDER_TEMPLATE},
        app_self=AppSelf(origin=APP_ORIGIN),
    )


@pytest.fixture
def hosted_config() -> ConfigSnapshot:
    """Configuration for a web site."""
    return ConfigSnapshot(
        allowed_verify_sites=frozenset({RECEIPT_CHECK_SITE}),
        pay_provider_urls={PAY_TYPE: PROVIDER_TEMPLATE},
        app_self=None,
        host_window_origin=SITE_ORIGIN,
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def window_provider() -> FakeWindowProvider:
    return FakeWindowProvider()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def recorder() -> OutcomeRecorder:
    return OutcomeRecorder()


@pytest.fixture
def session_config(
    hosted_config: ConfigSnapshot,
    window_provider: FakeWindowProvider,
    adapter: FakeAdapter,
) -> ConfigSnapshot:
    """Hosted-app configuration wired to fake window provider and adapter."""
    return hosted_config.replace(window_provider=window_provider, adapter=adapter)
