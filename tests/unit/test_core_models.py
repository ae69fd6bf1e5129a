"""
Unit tests for core data models.
"""

import io

import pytest

from keyseal.core.models import (
    EncryptedEnvelope,
    Envelope,
    KeyComponent,
    KeyEntity,
    Scope,
    SignatureEnvelope,
)


# ==============================================================================
# Scope
# ==============================================================================

class TestScope:
    def test_coerce_accepts_members_and_strings(self):
        assert Scope.coerce(Scope.PUBLIC) is Scope.PUBLIC
        assert Scope.coerce("private") is Scope.PRIVATE
        assert Scope.coerce("PUBLIC") is Scope.PUBLIC

    def test_coerce_rejects_unknown(self):
        with pytest.raises(ValueError, match="unknown scope"):
            Scope.coerce("secret")

    def test_str_is_wire_value(self):
        assert str(Scope.PRIVATE) == "private"
        assert f"{Scope.PUBLIC}" == "public"

    def test_members_equal_wire_strings(self):
        assert Scope.PUBLIC == "public"
        assert Scope.PRIVATE != "public"
        assert {("a", "public"): 1}[("a", Scope.PUBLIC)] == 1


# ==============================================================================
# KeyEntity
# ==============================================================================

class _FakeKey:
    def __init__(self, unlocked):
        self.is_unlocked = unlocked


class TestKeyEntity:
    def test_key_ids_include_subkeys(self):
        sub = KeyComponent("B1A06630BECF84A0", "854F5ACA34686B3C8BA2E9FDB1A06630BECF84A0", "RSAEncryptOrSign", None)
        entity = KeyEntity(fingerprint="E15E091587AB514783CF738A1F4AB93AE6B3F445", subkeys=(sub,))
        assert entity.key_id == "1F4AB93AE6B3F445"
        assert entity.key_ids == frozenset({"1F4AB93AE6B3F445", "B1A06630BECF84A0"})

    def test_key_id_ignores_spaces(self):
        entity = KeyEntity(fingerprint="E15E 0915 87AB 5147 83CF  738A 1F4A B93A E6B3 F445")
        assert entity.key_id == "1F4AB93AE6B3F445"

    def test_component_flags(self):
        entity = KeyEntity(fingerprint="AA" * 20, public=object())
        assert entity.has_public
        assert not entity.has_private
        assert not entity.is_unlocked

    def test_is_unlocked_follows_private_state(self):
        assert KeyEntity(fingerprint="AA" * 20, private=_FakeKey(True)).is_unlocked
        assert not KeyEntity(fingerprint="AA" * 20, private=_FakeKey(False)).is_unlocked

    def test_subkey_is_unlocked_reads_key(self):
        sub = KeyComponent("A" * 16, "A" * 40, "RSAEncryptOrSign", _FakeKey(True))
        assert sub.is_unlocked


# ==============================================================================
# Envelopes
# ==============================================================================

class TestEnvelope:
    def test_write_to_returns_count(self):
        env = EncryptedEnvelope("-----BEGIN PGP MESSAGE-----\n")
        buf = io.BytesIO()
        assert env.write_to(buf) == len(env)
        assert buf.getvalue() == bytes(env)

    def test_iter_chunks(self):
        env = Envelope(b"abcdefg")
        assert list(env.iter_chunks(3)) == [b"abc", b"def", b"g"]

    def test_equality_depends_on_type_and_bytes(self):
        assert EncryptedEnvelope(b"x") == EncryptedEnvelope(b"x")
        assert EncryptedEnvelope(b"x") != SignatureEnvelope(b"x")
        assert EncryptedEnvelope(b"x") != "x"
        assert hash(EncryptedEnvelope(b"x")) == hash(EncryptedEnvelope(b"x"))

    def test_str_and_repr(self):
        env = SignatureEnvelope(b"sig", hash_algorithm="SHA512")
        assert str(env) == "sig"
        assert env.hash_algorithm == "SHA512"
        assert repr(env) == "SignatureEnvelope(block_type='SIGNATURE', size=3)"
