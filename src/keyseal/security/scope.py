"""Scope validation and the locked/unlocked private key states.

A private key parsed from armor is a LockedKey. The only way to get an
UnlockedKey is LockedKey.unlock(), which holds the decrypted secret material
until the UnlockedKey is closed. Closing relocks the key through PGPy and
expires the handle; any later sign/decrypt raises KeyLockedError.

validate_scope() ties the unlocked key to an ExitStack so the material is
released when the caller's operation ends.
"""
from __future__ import annotations

import dataclasses
import logging
from contextlib import ExitStack
from typing import Optional, Union

from pgpy.errors import PGPDecryptionError, PGPError

from keyseal.core.exceptions import (
    KeyLockedError,
    MissingPrivateKeyError,
    MissingPublicKeyError,
    UnlockFailedError,
)
from keyseal.core.models import KeyEntity, Scope

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes, bytearray, None]

# UnlockedKey.__init__ refuses any other token
_UNLOCK_TOKEN = object()

_UNLOCK_ERRORS = (PGPDecryptionError, PGPError, NotImplementedError, ValueError)


def _passphrase_text(passphrase) -> str:
    if isinstance(passphrase, (bytes, bytearray)):
        try:
            return bytes(passphrase).decode("utf-8")
        except UnicodeDecodeError:
            raise UnlockFailedError("passphrase is not valid UTF-8") from None
    return passphrase


class LockedKey:
    """A private key whose secret material has not been decrypted."""

    __slots__ = ("_key",)

    is_unlocked = False

    def __init__(self, key):
        self._key = key

    @property
    def is_protected(self) -> bool:
        return bool(self._key.is_protected or any(sub.is_protected for sub in self._key.subkeys.values()))

    @property
    def key_id(self) -> str:
        return self._key.fingerprint.keyid

    def unlock(self, passphrase: Passphrase = None) -> "UnlockedKey":
        """
        Decrypt the secret material and return an UnlockedKey.

        The primary key and every subkey are unlocked with the same
        passphrase. A key with no protected component needs no passphrase.
        A missing or wrong passphrase, or any component that stays locked,
        raises UnlockFailedError and leaves nothing unlocked.
        """
        key = self._key
        if key.is_protected:
            # PGPy unlocks the subkeys together with the primary
            components = [key]
        else:
            components = [sub for sub in key.subkeys.values() if sub.is_protected]

        release = None
        if components:
            if not passphrase:
                raise UnlockFailedError(f"key {self.key_id} is passphrase protected and no passphrase was given")
            text = _passphrase_text(passphrase)
            with ExitStack() as stack:
                try:
                    for component in components:
                        stack.enter_context(component.unlock(text))
                except _UNLOCK_ERRORS as e:
                    raise UnlockFailedError(f"key {self.key_id} could not be unlocked") from e
                release = stack.pop_all()

        unlocked = UnlockedKey(key, _UNLOCK_TOKEN, release=release)
        if not key.is_unlocked or not all(sub.is_unlocked for sub in key.subkeys.values()):
            unlocked.close()
            raise UnlockFailedError(f"key {self.key_id} has subkeys that stayed locked")
        return unlocked

    def __repr__(self):
        return f"LockedKey({self.key_id})"


class UnlockedKey:
    """
    Handle to unlocked secret material. Obtainable only from LockedKey.unlock().

    Use it as a context manager or call close() to relock.
    """

    __slots__ = ("_key", "_release", "_active")

    def __init__(self, key, token, release=None):
        if token is not _UNLOCK_TOKEN:
            raise TypeError("UnlockedKey is only created by LockedKey.unlock()")
        self._key = key
        self._release = release
        self._active = True

    @property
    def is_unlocked(self) -> bool:
        return self._active

    @property
    def key_id(self) -> str:
        return self._key.fingerprint.keyid

    def _require(self):
        if not self._active:
            raise KeyLockedError(f"key {self.key_id} was released and is locked again")
        return self._key

    def sign(self, data: bytes, hash_algorithm=None):
        """Make a detached binary-document signature over ``data``."""
        prefs = {}
        if hash_algorithm is not None:
            prefs["hash"] = hash_algorithm
        return self._require().sign(bytes(data), **prefs)

    def decrypt(self, message):
        return self._require().decrypt(message)

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        release, self._release = self._release, None
        if release is not None:
            release.__exit__(None, None, None)
        logger.debug("Released secret material of %s", self.key_id)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        state = "active" if self._active else "expired"
        return f"UnlockedKey({self.key_id}, {state})"


def validate_scope(
    entity: KeyEntity,
    scope,
    passphrase: Passphrase = None,
    stack: Optional[ExitStack] = None,
) -> KeyEntity:
    """
    Check that ``entity`` has what ``scope`` needs.

    PUBLIC scope needs a public key and returns the entity unchanged.
    PRIVATE scope needs a private key, unlocks it with ``passphrase`` and
    returns a copy holding the UnlockedKey. With a ``stack`` the key is
    relocked when the stack closes; without one the caller owns the
    UnlockedKey and must close it.
    """
    scope = Scope.coerce(scope)

    if scope is Scope.PUBLIC:
        if entity.public is None:
            raise MissingPublicKeyError(f"key {entity.key_id} has no public key block")
        return entity

    private = entity.private
    if private is None:
        raise MissingPrivateKeyError(f"key {entity.key_id} has no private key block")
    if isinstance(private, UnlockedKey):
        private._require()
        return entity

    unlocked = private.unlock(passphrase)
    if stack is not None:
        stack.callback(unlocked.close)
    return dataclasses.replace(entity, private=unlocked)
