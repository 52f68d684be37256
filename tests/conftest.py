"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from notification_relay.types import Notification
from notification_relay.utils.logging import clear_correlation_id
from tests.fixtures.doubles import FakeClock, make_notification


@pytest.fixture(autouse=True)
def _isolated_correlation_id() -> Iterator[None]:
    """Every test starts and ends without a correlation ID."""
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notification() -> Notification:
    return make_notification()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write an empty (all defaults) configuration file."""
    path = tmp_path / "notification-relay.yaml"
    _ = path.write_text("", encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def rsa_key_pair() -> tuple[str, str]:
    """Generate a throwaway RSA key pair as (private PEM, public PEM)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = (
        key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )
    return private_pem, public_pem
