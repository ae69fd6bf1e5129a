"""End-to-end envelope round trips through the on-disk key providers."""

import pytest

from keyseal.core.exceptions import DecryptionKeyResolutionError, NoMatchingKeyError
from keyseal.core.models import Scope
from keyseal.core.providers import DirectoryKeyProvider
from keyseal.database.key_store import SQLiteKeyStore
from keyseal.security import KeyResolver, decrypt, encrypt, parse_entity, sign, verify, verify_sender

QWERT = "qwert@mail.xy"
BOB = "bob@example.org"
PASSPHRASE = "qwert123"


@pytest.fixture
def sqlite_provider(tmp_path, qwert_public, qwert_private, other_key):
    store = SQLiteKeyStore(tmp_path / "keys.db")
    store.initialize()
    store.put(QWERT, Scope.PUBLIC, qwert_public)
    store.put(QWERT, Scope.PRIVATE, qwert_private)
    store.put(BOB, Scope.PUBLIC, other_key[0])
    store.put(BOB, Scope.PRIVATE, other_key[1])
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def directory_provider(tmp_path, qwert_public, qwert_private, other_key):
    provider = DirectoryKeyProvider(tmp_path / "keys")
    provider.store(QWERT, "public", qwert_public)
    provider.store(QWERT, "private", qwert_private)
    provider.store(BOB, "public", other_key[0])
    return provider


@pytest.fixture(params=["sqlite", "directory"])
def key_provider(request):
    return request.getfixturevalue(f"{request.param}_provider")


def test_hello_world(key_provider):
    envelope = encrypt(b"Hello World", [QWERT], key_provider)
    assert decrypt(envelope, QWERT, key_provider, PASSPHRASE) == b"Hello World"


def test_wrong_passphrase(key_provider):
    envelope = encrypt(b"Hello World", [QWERT], key_provider)
    with pytest.raises(DecryptionKeyResolutionError):
        decrypt(envelope, QWERT, key_provider, "wrong")


def test_unrelated_private_key_cannot_decrypt(sqlite_provider):
    envelope = encrypt(b"Hello World", [QWERT], sqlite_provider)
    with pytest.raises(NoMatchingKeyError):
        decrypt(envelope, BOB, sqlite_provider)


def test_bob_without_private_key_cannot_decrypt(directory_provider):
    envelope = encrypt(b"Hello World", [BOB], directory_provider)
    with pytest.raises(DecryptionKeyResolutionError) as excinfo:
        decrypt(envelope, BOB, directory_provider)
    assert excinfo.value.identity == BOB


def test_sign_then_verify(key_provider, qwert_public, other_key):
    signature = sign(b"Hello World", QWERT, key_provider, PASSPHRASE)
    assert verify(signature, parse_entity(qwert_public), b"Hello World") is True
    assert verify(signature, parse_entity(other_key[0]), b"Hello World") is False
    assert verify_sender(signature, QWERT, key_provider, b"Hello World")
    assert not verify_sender(signature, BOB, key_provider, b"Hello World")


def test_resolver_shared_across_operations(sqlite_provider):
    with KeyResolver(sqlite_provider, max_workers=2) as resolver:
        entities = resolver.resolve_many([BOB, QWERT], Scope.PUBLIC)
    assert [entity.key_id for entity in entities] == [
        parse_entity(sqlite_provider.get(BOB, Scope.PUBLIC)).key_id,
        "1F4AB93AE6B3F445",
    ]
