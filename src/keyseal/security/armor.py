"""ASCII armor (RFC 4880 section 6.2) for keyseal envelopes.

Encoding writes the exact layout standard OpenPGP clients expect:

    -----BEGIN PGP <TYPE>-----
    [Key: Value headers]
    <blank line>
    <base64 body, 64 columns>
    =<base64 CRC-24>
    -----END PGP <TYPE>-----

Decoding is delegated to PGPy's armor reader; a CRC-24 mismatch is treated as
corruption instead of the warning PGPy emits.
"""
import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from pgpy.types import Armorable

from keyseal.core.exceptions import MalformedArmorError

LINE_LENGTH = 64

MESSAGE = "MESSAGE"
SIGNATURE = "SIGNATURE"
PUBLIC_KEY_BLOCK = "PUBLIC KEY BLOCK"
PRIVATE_KEY_BLOCK = "PRIVATE KEY BLOCK"

_HEADER_LINE = re.compile(r"\A\s*-----BEGIN PGP (?P<type>[A-Z0-9 ,]+)-----\r?$", re.MULTILINE)


@dataclass(frozen=True)
class ArmorBlock:
    block_type: str
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)


def _as_text(data: Union[str, bytes, bytearray]) -> str:
    if isinstance(data, str):
        return data
    try:
        return bytes(data).decode("ascii")
    except UnicodeDecodeError:
        raise MalformedArmorError("armored data must be ASCII text") from None


def armor_type(data) -> Optional[str]:
    """Return the block type named by the leading armor header line, or None."""
    try:
        text = _as_text(data)
    except MalformedArmorError:
        return None
    m = _HEADER_LINE.match(text)
    return m.group("type") if m else None


def crc24(data: bytes) -> int:
    return Armorable.crc24(bytearray(data))


def armor_encode(data: bytes, block_type: str, headers: Optional[Dict[str, str]] = None) -> str:
    payload = base64.b64encode(bytes(data)).decode("ascii")
    crc = base64.b64encode(crc24(data).to_bytes(3, "big")).decode("ascii")

    lines = [f"-----BEGIN PGP {block_type}-----"]
    lines += [f"{key}: {value}" for key, value in (headers or {}).items()]
    lines.append("")
    lines += [payload[i:i + LINE_LENGTH] for i in range(0, len(payload), LINE_LENGTH)]
    lines.append(f"={crc}")
    lines.append(f"-----END PGP {block_type}-----")
    return "\n".join(lines) + "\n"


def armor_decode(data, expected: Optional[str] = None) -> ArmorBlock:
    """
    Decode one armored block.

    Raises MalformedArmorError if there is no armor header, the body or
    checksum does not decode, the checksum does not match, or ``expected``
    is given and the block type differs.
    """
    text = _as_text(data)
    if armor_type(text) is None:
        raise MalformedArmorError("missing PGP armor header")

    try:
        unarmored = Armorable.ascii_unarmor(text)
    except (ValueError, binascii.Error) as e:
        raise MalformedArmorError(f"armor does not decode: {e}") from e

    block_type = unarmored.get("magic")
    if not block_type:
        raise MalformedArmorError("missing PGP armor header")

    body = bytes(unarmored.get("body") or b"")
    if not body:
        raise MalformedArmorError("armor body is empty")

    crc = unarmored.get("crc")
    if crc is not None:
        if isinstance(crc, str):
            try:
                crc = int.from_bytes(base64.b64decode(crc.encode("ascii")), "big")
            except (ValueError, binascii.Error) as e:
                raise MalformedArmorError("armor checksum does not decode") from e
        elif isinstance(crc, (bytes, bytearray)):
            crc = int.from_bytes(crc, "big")
        if crc != crc24(body):
            raise MalformedArmorError("armor checksum mismatch")

    if expected is not None and block_type != expected:
        raise MalformedArmorError(f"expected PGP {expected}, got PGP {block_type}")

    return ArmorBlock(block_type=block_type, body=body, headers=dict(unarmored.get("headers") or {}))
