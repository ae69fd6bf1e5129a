"""Shared fixtures: the qwert test key pair and PGPy-generated keys."""

from pathlib import Path

import pytest
from pgpy import PGPKey, PGPUID
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from keyseal.core.providers import MappingKeyProvider

FIXTURES = Path(__file__).parent / "fixtures"

QWERT = "qwert@mail.xy"
QWERT_PASSPHRASE = "qwert123"
QWERT_KEY_ID = "1F4AB93AE6B3F445"
QWERT_SUBKEY_ID = "B1A06630BECF84A0"


def generate_key(name, email, passphrase=None, encryption_subkey=True):
    """Return (public armored, private armored) for a fresh RSA-2048 key."""
    key = PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = PGPUID.new(name, email=email)
    key.add_uid(
        uid,
        usage={KeyFlags.Sign, KeyFlags.Certify},
        hashes=[HashAlgorithm.SHA256, HashAlgorithm.SHA512],
        ciphers=[SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES128],
        compression=[CompressionAlgorithm.Uncompressed],
    )
    if encryption_subkey:
        sub = PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
        key.add_subkey(sub, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})
    if passphrase:
        key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return str(key.pubkey), str(key)


@pytest.fixture(scope="session")
def qwert_public() -> str:
    return (FIXTURES / "qwert_public.asc").read_text(encoding="ascii")


@pytest.fixture(scope="session")
def qwert_private() -> str:
    return (FIXTURES / "qwert_private.asc").read_text(encoding="ascii")


@pytest.fixture(scope="session")
def other_key():
    """An unrelated, unprotected key pair for bob@example.org."""
    return generate_key("Bob", "bob@example.org")


@pytest.fixture(scope="session")
def sign_only_key():
    """A key pair without any encryption-capable key."""
    return generate_key("Signer", "signer@example.org", encryption_subkey=False)


@pytest.fixture()
def provider(qwert_public, qwert_private, other_key) -> MappingKeyProvider:
    """Provider knowing qwert (both halves) and bob (both halves)."""
    bob_public, bob_private = other_key
    return MappingKeyProvider(
        {
            QWERT: {"public": qwert_public, "private": qwert_private},
            "bob@example.org": {"public": bob_public, "private": bob_private},
        }
    )


def generate_split_key(email, primary_passphrase=None, subkey_passphrase="other"):
    """Return the private armored block of a key whose subkey has its own passphrase."""
    key = PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    key.add_uid(PGPUID.new("Split", email=email), usage={KeyFlags.Sign, KeyFlags.Certify})
    sub = PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    sub.protect(subkey_passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    if primary_passphrase:
        key.protect(primary_passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
        with key.unlock(primary_passphrase), sub.unlock(subkey_passphrase):
            key.add_subkey(sub, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})
    else:
        with sub.unlock(subkey_passphrase):
            key.add_subkey(sub, usage={KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})
    return str(key)


@pytest.fixture(scope="session")
def split_key():
    """Unprotected primary key with a subkey protected by "other"."""
    return generate_split_key("split@example.org")


@pytest.fixture(scope="session")
def mismatched_key():
    """Primary protected by "primary", subkey protected by "other"."""
    return generate_split_key("mismatch@example.org", primary_passphrase="primary")
