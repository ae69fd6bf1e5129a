"""Parse armored OpenPGP key blocks into KeyEntity values."""
import logging
from typing import Union

from pgpy import PGPKey

from keyseal.core.exceptions import CorruptKeyPacketError, MalformedArmorError
from keyseal.core.models import KeyComponent, KeyEntity

from .armor import PRIVATE_KEY_BLOCK, PUBLIC_KEY_BLOCK, armor_decode, armor_type
from .scope import LockedKey

logger = logging.getLogger(__name__)

KEY_BLOCK_TYPES = (PUBLIC_KEY_BLOCK, PRIVATE_KEY_BLOCK)


def _fingerprint(key) -> str:
    return str(key.fingerprint).replace(" ", "").upper()


def parse_entity(material: Union[str, bytes]) -> KeyEntity:
    """
    Turn armored key text into a KeyEntity.

    A PUBLIC KEY BLOCK gives an entity with ``public`` set; a PRIVATE KEY
    BLOCK gives one with ``private`` set to a LockedKey. The block type the
    armor header announces must agree with the packets inside it.

    Raises MalformedArmorError when the text is not an armored key block and
    CorruptKeyPacketError when the armor is fine but the packets are not a
    usable key.
    """
    if not isinstance(material, (str, bytes, bytearray)):
        raise MalformedArmorError(f"key material must be text, got {type(material).__name__}")

    block_type = armor_type(material)
    if block_type is None:
        raise MalformedArmorError("missing PGP armor header")
    if block_type not in KEY_BLOCK_TYPES:
        raise MalformedArmorError(f"expected a PGP key block, got PGP {block_type}")

    block = armor_decode(material, expected=block_type)

    try:
        loaded = PGPKey.from_blob(block.body)
    except Exception as e:
        raise CorruptKeyPacketError(f"key packets do not parse: {e}") from e
    key = loaded[0] if isinstance(loaded, tuple) else loaded

    if getattr(key, "_key", None) is None or key.fingerprint is None:
        raise CorruptKeyPacketError("armored block holds no primary key packet")
    if key.is_public != (block_type == PUBLIC_KEY_BLOCK):
        raise CorruptKeyPacketError(f"PGP {block_type} header does not match the key packets")

    subkeys = tuple(
        KeyComponent(
            key_id=key_id.upper(),
            fingerprint=_fingerprint(sub),
            algorithm=sub.key_algorithm.name,
            key=sub,
        )
        for key_id, sub in key.subkeys.items()
    )
    identities = tuple(uid.userid for uid in key.userids if uid.userid)

    if key.is_public:
        entity = KeyEntity(fingerprint=_fingerprint(key), identities=identities, public=key, subkeys=subkeys)
    else:
        entity = KeyEntity(
            fingerprint=_fingerprint(key), identities=identities, private=LockedKey(key), subkeys=subkeys
        )

    logger.debug("Parsed %s %s with %d subkey(s)", block_type.lower(), entity.key_id, len(subkeys))
    return entity
