"""
Base data models for key entities and envelopes
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Tuple


CHUNK_SIZE = 65536  # 64KB


class Scope(str, Enum):
    # Which half of a key an operation needs; members compare equal to their wire strings
    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def coerce(cls, value):
        """Accept a Scope or its wire string ("public"/"private")."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown scope {value!r}; expected 'public' or 'private'") from None

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class KeyComponent:
    """A subordinate key bound to a primary key (e.g. the encryption subkey)."""

    key_id: str
    fingerprint: str
    algorithm: str
    key: Any = field(repr=False, compare=False)

    @property
    def is_unlocked(self) -> bool:
        return self.key.is_unlocked


@dataclass(frozen=True)
class KeyEntity:
    """
    A key holder's bundle as parsed from one armored key block.

    Exactly one of ``public`` / ``private`` is set: a public key block gives a
    certificate usable for encryption and verification, a private key block
    gives a LockedKey that has to be unlocked before signing or decrypting.
    Entities are built per call and never shared between calls.
    """

    fingerprint: str
    identities: Tuple[str, ...] = ()
    public: Any = field(default=None, repr=False, compare=False)
    private: Any = field(default=None, repr=False, compare=False)
    subkeys: Tuple[KeyComponent, ...] = ()

    @property
    def key_id(self) -> str:
        return self.fingerprint.replace(" ", "")[-16:]

    @property
    def key_ids(self) -> frozenset:
        """Primary and subordinate 16-hex key ids."""
        return frozenset({self.key_id} | {sk.key_id for sk in self.subkeys})

    @property
    def has_public(self) -> bool:
        return self.public is not None

    @property
    def has_private(self) -> bool:
        return self.private is not None

    @property
    def is_unlocked(self) -> bool:
        return bool(self.private is not None and getattr(self.private, "is_unlocked", False))


class Envelope:
    """
    A finished armored artifact.

    The bytes are fixed at construction; ``write_to`` drains them into any
    binary stream, mirroring a writer-to style source.
    """

    block_type = ""

    __slots__ = ("_data",)

    def __init__(self, data):
        if isinstance(data, str):
            data = data.encode("ascii")
        self._data = bytes(data)

    def write_to(self, stream) -> int:
        """Write the armored bytes into ``stream`` and return the count written."""
        written = 0
        for chunk in self.iter_chunks():
            n = stream.write(chunk)
            written += len(chunk) if n is None else n
        return written

    def iter_chunks(self, size: int = CHUNK_SIZE) -> Iterator[bytes]:
        for start in range(0, len(self._data), size):
            yield self._data[start:start + size]

    def __bytes__(self):
        return self._data

    def __str__(self):
        return self._data.decode("ascii")

    def __len__(self):
        return len(self._data)

    def __eq__(self, other):
        if not isinstance(other, Envelope):
            return NotImplemented
        return type(self) is type(other) and self._data == other._data

    def __hash__(self):
        return hash((type(self).__name__, self._data))

    def __repr__(self):
        return f"{type(self).__name__}(block_type={self.block_type!r}, size={len(self._data)})"


class EncryptedEnvelope(Envelope):
    block_type = "MESSAGE"

    __slots__ = ()


class SignatureEnvelope(Envelope):
    block_type = "SIGNATURE"

    __slots__ = ("hash_algorithm",)

    def __init__(self, data, hash_algorithm: Optional[str] = None):
        super().__init__(data)
        # e.g. "SHA512"; PGP/MIME needs it for the micalg parameter
        self.hash_algorithm = hash_algorithm
