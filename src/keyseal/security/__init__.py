"""OpenPGP key resolution and envelope operations for keyseal.

This package provides:
- ASCII armor encoding/decoding with CRC-24 checks
- Key block parsing and scope validation (locked/unlocked private keys)
- Identity resolution through a caller-supplied key provider
- encrypt / sign / decrypt / verify on armored envelopes
"""

from .armor import armor_decode, armor_encode
from .envelope import decrypt, encrypt, sign, verify, verify_sender
from .parser import parse_entity
from .resolver import KeyResolver, resolve_many, resolve_one
from .scope import LockedKey, UnlockedKey, validate_scope

__all__ = [
    "armor_decode",
    "armor_encode",
    "parse_entity",
    "validate_scope",
    "LockedKey",
    "UnlockedKey",
    "KeyResolver",
    "resolve_one",
    "resolve_many",
    "encrypt",
    "sign",
    "decrypt",
    "verify",
    "verify_sender",
]
