"""
PGP/MIME (RFC 3156) wrappers around the envelope operations.

encrypt_message():

    multipart/encrypted
    +-> application/pgp-encrypted  (control information, "Version: 1")
    +-> application/octet-stream   (armored PGP MESSAGE of the inner message)

sign_message():

    multipart/signed
    +-> original message part      (signed as serialized)
    +-> application/pgp-signature  (armored detached signature)
"""
import copy
import io
import logging
from email.encoders import encode_7or8bit
from email.header import decode_header
from email.message import Message
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.utils import getaddresses
from typing import Iterable, Iterator, List, Optional, Tuple

from keyseal.core.settings import EnvelopeSettings
from keyseal.security.envelope import encrypt, sign

logger = logging.getLogger(__name__)

# headers copied from the inner message onto the outer multipart
ROUTING_HEADERS = (
    "From", "To", "Cc", "Reply-To", "Subject", "Date", "Message-ID",
    "In-Reply-To", "References", "Resent-From", "Resent-To", "Resent-Cc",
)

_TARGET_HEADERS = ("to", "cc", "bcc", "resent-to", "resent-cc", "resent-bcc")


def decoded_addresses(values: Iterable[str]) -> Iterator[Tuple[str, str]]:
    """``email.utils.getaddresses`` with RFC 2047 display names decoded."""
    for name, address in getaddresses(list(values)):
        parts = []
        for chunk, encoding in decode_header(name):
            if isinstance(chunk, bytes):
                chunk = chunk.decode(encoding or "ascii", errors="replace")
            parts.append(chunk)
        yield "".join(parts).strip(), address


def email_targets(message: Message) -> List[str]:
    """Recipient addresses from To/Cc/Bcc and their Resent-* forms, deduplicated in order."""
    values = []
    for header in _TARGET_HEADERS:
        values.extend(message.get_all(header, []))
    seen = []
    for _, address in decoded_addresses(values):
        if address and address not in seen:
            seen.append(address)
    return seen


def email_sender(message: Message) -> Optional[str]:
    addresses = [address for _, address in decoded_addresses(message.get_all("from", [])) if address]
    return addresses[0] if addresses else None


def strip_bcc(message: Message) -> Message:
    del message["bcc"]
    del message["resent-bcc"]
    return message


def _serialize(message: Message) -> bytes:
    return message.as_bytes()


def _copy_routing_headers(source: Message, target: Message) -> None:
    for name in ROUTING_HEADERS:
        for value in source.get_all(name, []):
            target[name] = value


def encrypt_message(
    message: Message,
    provider,
    recipients: Optional[Iterable[str]] = None,
    settings: Optional[EnvelopeSettings] = None,
) -> MIMEMultipart:
    """
    Encrypt ``message`` into a multipart/encrypted message.

    Recipients default to the message's To/Cc/Bcc addresses. Bcc headers are
    removed from a copy before it is encrypted; ``message`` is left as is.
    """
    if recipients is None:
        recipients = email_targets(message)
        logger.debug("Extracted %d encryption recipient(s) from headers", len(recipients))
    recipients = list(recipients)

    inner = strip_bcc(copy.deepcopy(message))
    envelope = encrypt(_serialize(inner), recipients, provider, settings)

    control = MIMEApplication(_data="Version: 1\n", _subtype="pgp-encrypted", _encoder=encode_7or8bit)
    body = MIMEApplication(
        _data=str(envelope),
        _subtype='octet-stream; name="encrypted.asc"',
        _encoder=encode_7or8bit,
    )
    body["Content-Description"] = "OpenPGP encrypted message"
    body["Content-Disposition"] = 'inline; filename="encrypted.asc"'

    outer = MIMEMultipart("encrypted", protocol="application/pgp-encrypted")
    outer.attach(control)
    outer.attach(body)
    _copy_routing_headers(inner, outer)
    return outer


def sign_message(
    message: Message,
    sender: Optional[str] = None,
    provider=None,
    passphrase=None,
    settings: Optional[EnvelopeSettings] = None,
) -> MIMEMultipart:
    """
    Wrap ``message`` in multipart/signed with a detached signature.

    The signature covers the serialized message part with CRLF line endings
    as RFC 3156 requires. ``sender`` defaults to the From address.
    """
    if provider is None:
        raise TypeError("sign_message() needs a key provider")
    if sender is None:
        sender = email_sender(message)
        if sender is None:
            raise ValueError("message has no From address and no sender was given")

    inner = Message()
    for name, value in message.items():
        if name.lower().startswith("content-") or name.lower() == "mime-version":
            inner[name] = value
    inner.set_payload(message.get_payload())
    signed_bytes = canonical_bytes(_serialize(inner))

    signature = sign(signed_bytes, sender, provider, passphrase, settings)
    micalg = f"pgp-{(signature.hash_algorithm or 'SHA256').lower()}"

    sig_part = MIMEApplication(
        _data=str(signature),
        _subtype='pgp-signature; name="signature.asc"',
        _encoder=encode_7or8bit,
    )
    sig_part["Content-Description"] = "OpenPGP digital signature"

    outer = MIMEMultipart("signed", micalg=micalg, protocol="application/pgp-signature")
    outer.attach(inner)
    outer.attach(sig_part)
    _copy_routing_headers(message, outer)
    return outer


def canonical_bytes(data: bytes) -> bytes:
    """CRLF line endings, the form RFC 3156 signs."""
    return data.replace(b"\r\n", b"\n").replace(b"\n", b"\r\n")


class EncryptedMailWriter:
    """
    Encrypts a message on demand.

    Nothing is encrypted until ``write_to`` or ``str()`` is called; each
    call resolves the recipients' keys again.
    """

    def __init__(self, message: Message, provider, recipients: Optional[Iterable[str]] = None,
                 settings: Optional[EnvelopeSettings] = None):
        self.message = message
        self.provider = provider
        self.recipients = list(recipients) if recipients is not None else None
        self.settings = settings

    def encrypted(self) -> MIMEMultipart:
        return encrypt_message(self.message, self.provider, self.recipients, self.settings)

    def write_to(self, stream) -> int:
        data = self.encrypted().as_bytes()
        stream.write(data)
        return len(data)

    def __str__(self):
        buf = io.BytesIO()
        self.write_to(buf)
        return buf.getvalue().decode("ascii")
