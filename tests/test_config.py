"""Test domain configuration defaults and environment overrides."""
import dataclasses
from decimal import Decimal

import pytest

from patterns.domain_config import RentalConfig


def test_defaults():
    config = RentalConfig.default()
    assert config.pricing.currency == "EUR"
    assert config.pricing.amount_quantum == Decimal("0.01")
    assert config.lending.extension_days == 7
    assert config.lending.default_rental_duration_days == 3
    assert not config.lending.hand_over_on_payment
    assert config.maintenance.repair_on_startup
    assert config.maintenance.repair_on_read
    assert config.idempotency_ttl_seconds == 3600


def test_config_is_frozen():
    config = RentalConfig.default()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.idempotency_ttl_seconds = 10


def test_from_env(monkeypatch):
    monkeypatch.setenv("SAKILA_EXTENSION_DAYS", "14")
    monkeypatch.setenv("SAKILA_HAND_OVER_ON_PAYMENT", "true")
    monkeypatch.setenv("SAKILA_REPAIR_ON_READ", "no")
    monkeypatch.setenv("SAKILA_CURRENCY", "USD")
    monkeypatch.setenv("SAKILA_IDEMPOTENCY_TTL_SECONDS", "60")

    config = RentalConfig.from_env()
    assert config.lending.extension_days == 14
    assert config.lending.hand_over_on_payment
    assert not config.maintenance.repair_on_read
    assert config.maintenance.repair_on_startup
    assert config.pricing.currency == "USD"
    assert config.idempotency_ttl_seconds == 60


def test_from_env_custom_prefix(monkeypatch):
    monkeypatch.setenv("RENTALS_EXTENSION_DAYS", "2")
    assert RentalConfig.from_env(prefix="RENTALS_").lending.extension_days == 2
