"""
Shared pytest fixtures.
"""

from datetime import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from agendasync.adapters.storage import InMemoryStore
from agendasync.config import AppConfig
from agendasync.domain.models import Patient, Service, WorkShift


@pytest.fixture(scope="session")
def rsa_keys():
    """A throwaway RSA key pair as PEM strings (private, public)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def store() -> InMemoryStore:
    """Store with a Monday 08:00-12:00 shift, one service and one patient."""
    store = InMemoryStore()
    store.save_shift(WorkShift(day_of_week=1, start_time=time(8, 0), end_time=time(12, 0)))
    store.save_service(Service(id="svc-therapy", name="Therapy", price=80.0, duration_min=60))
    store.patients["pat-1"] = Patient(
        id="pat-1",
        full_name="Ana Pérez",
        email="ana@example.com",
        phone="+57 300 000 0000",
    )
    return store
