"""
Envelope settings with defaults and environment variable overrides.

Usage:
    from keyseal.core.settings import EnvelopeSettings

    settings = EnvelopeSettings()            # defaults
    settings = EnvelopeSettings.from_env()   # KEYSEAL_* overrides
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple

from pgpy.constants import CompressionAlgorithm, HashAlgorithm, SymmetricKeyAlgorithm

from .models import CHUNK_SIZE

logger = logging.getLogger(__name__)

ENV_PREFIX = "KEYSEAL_"

# ciphers we are willing to encrypt with, in the order we prefer them
DEFAULT_CIPHERS = ("AES256", "AES192", "AES128")
# hashes accepted when verifying detached signatures
DEFAULT_ALLOWED_HASHES = ("SHA256", "SHA384", "SHA512", "SHA224")


def _enum_names(enum_cls, names) -> Tuple[str, ...]:
    out = []
    for name in names:
        name = name.strip().upper()
        if not name:
            continue
        if name not in enum_cls.__members__:
            raise ValueError(f"unknown {enum_cls.__name__} {name!r}")
        out.append(name)
    return tuple(out)


@dataclass(frozen=True)
class EnvelopeSettings:
    cipher_preferences: Tuple[str, ...] = DEFAULT_CIPHERS
    compression: str = "Uncompressed"
    allowed_hashes: Tuple[str, ...] = DEFAULT_ALLOWED_HASHES
    signature_hash: Optional[str] = None
    armor_headers: Dict[str, str] = field(default_factory=dict)
    chunk_size: int = CHUNK_SIZE
    max_workers: int = 1

    def __post_init__(self):
        object.__setattr__(self, "cipher_preferences", _enum_names(SymmetricKeyAlgorithm, self.cipher_preferences))
        object.__setattr__(self, "allowed_hashes", _enum_names(HashAlgorithm, self.allowed_hashes))
        if self.compression not in CompressionAlgorithm.__members__:
            raise ValueError(f"unknown CompressionAlgorithm {self.compression!r}")
        if self.signature_hash is not None:
            object.__setattr__(self, "signature_hash", _enum_names(HashAlgorithm, [self.signature_hash])[0])
        if not self.cipher_preferences:
            raise ValueError("cipher_preferences must name at least one cipher")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    # ------------------------------------------------------------------
    # codec views
    # ------------------------------------------------------------------

    @property
    def ciphers(self):
        return [SymmetricKeyAlgorithm[name] for name in self.cipher_preferences]

    @property
    def compression_algorithm(self):
        return CompressionAlgorithm[self.compression]

    @property
    def hash_allow_list(self):
        return frozenset(HashAlgorithm[name] for name in self.allowed_hashes)

    @property
    def signature_hash_algorithm(self):
        return HashAlgorithm[self.signature_hash] if self.signature_hash else None

    def with_overrides(self, **changes) -> "EnvelopeSettings":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EnvelopeSettings":
        """
        Build settings from ``KEYSEAL_*`` variables.

        KEYSEAL_CIPHERS, KEYSEAL_ALLOWED_HASHES: comma separated names
        KEYSEAL_COMPRESSION, KEYSEAL_SIGNATURE_HASH: single names
        KEYSEAL_CHUNK_SIZE, KEYSEAL_MAX_WORKERS: integers
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get(ENV_PREFIX + "CIPHERS"):
            kwargs["cipher_preferences"] = tuple(env[ENV_PREFIX + "CIPHERS"].split(","))
        if env.get(ENV_PREFIX + "ALLOWED_HASHES"):
            kwargs["allowed_hashes"] = tuple(env[ENV_PREFIX + "ALLOWED_HASHES"].split(","))
        if env.get(ENV_PREFIX + "COMPRESSION"):
            kwargs["compression"] = env[ENV_PREFIX + "COMPRESSION"].strip()
        if env.get(ENV_PREFIX + "SIGNATURE_HASH"):
            kwargs["signature_hash"] = env[ENV_PREFIX + "SIGNATURE_HASH"].strip()
        for key, name in (("chunk_size", "CHUNK_SIZE"), ("max_workers", "MAX_WORKERS")):
            raw = env.get(ENV_PREFIX + name)
            if raw:
                try:
                    kwargs[key] = int(raw)
                except ValueError:
                    raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None

        if kwargs:
            logger.debug("Applying environment overrides: %s", sorted(kwargs))
        return cls(**kwargs)


DEFAULT_SETTINGS = EnvelopeSettings()
