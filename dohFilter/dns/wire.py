"""Minimal DNS wire-format codec for the filtering path.

Only what the relay needs is implemented: the transaction id and the first
question of a query, and a header-only NXDOMAIN answer. Name compression is
not supported and is rejected explicitly.
"""
from __future__ import annotations

import base64
import binascii
import struct
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from dohFilter.errors import MalformedMessage

HEADER_LEN = 12
DNS_MESSAGE_CONTENT_TYPE = "application/dns-message"

# QR=1, Opcode=0, AA=0, TC=0, RD=1, RA=1, RCODE=3 (NXDOMAIN)
NXDOMAIN_FLAGS = 0x8183

_LABEL_TYPE_MASK = 0xC0

_HEADER = struct.Struct("!HHHHHH")
_QTYPE_QCLASS = struct.Struct("!HH")


class DNSQuery(BaseModel):
    """Decoded view of the first question of a DNS query."""
    transaction_id: int = Field(ge=0, le=0xFFFF)
    question_name: str = ""
    qtype: Optional[int] = None
    qclass: Optional[int] = None

    model_config = ConfigDict(frozen=True)


def decode_query(buf: bytes) -> DNSQuery:
    """Decode the transaction id and first question name of a wire query.

    Raises:
        MalformedMessage: buffer shorter than the header, a label running past
            the end of the buffer, or a compressed/extended label type.
    """
    if len(buf) < HEADER_LEN:
        raise MalformedMessage(f"DNS message too short: {len(buf)} bytes")

    (transaction_id,) = struct.unpack_from("!H", buf, 0)

    labels: List[str] = []
    offset = HEADER_LEN
    terminated = False
    while offset < len(buf):
        length = buf[offset]
        offset += 1
        if length == 0:
            terminated = True
            break
        if length & _LABEL_TYPE_MASK:
            raise MalformedMessage(
                f"Unsupported label type 0x{length:02x} at offset {offset - 1}"
            )
        if offset + length > len(buf):
            raise MalformedMessage(
                f"Label of length {length} at offset {offset - 1} overruns {len(buf)}-byte message"
            )
        labels.append(buf[offset:offset + length].decode("latin-1"))
        offset += length

    qtype = qclass = None
    if terminated and offset + _QTYPE_QCLASS.size <= len(buf):
        qtype, qclass = _QTYPE_QCLASS.unpack_from(buf, offset)

    return DNSQuery(
        transaction_id=transaction_id,
        question_name=".".join(labels),
        qtype=qtype,
        qclass=qclass,
    )


def encode_nxdomain(transaction_id: int) -> bytes:
    """Build a header-only NXDOMAIN answer for ``transaction_id``.

    The question section is not echoed and every section count is zero. This
    is enough for a filtering client and intentionally not a complete answer.
    """
    if not 0 <= transaction_id <= 0xFFFF:
        raise ValueError(f"transaction id out of range: {transaction_id}")
    return _HEADER.pack(transaction_id, NXDOMAIN_FLAGS, 0, 0, 0, 0)


def decode_doh_get_param(value: str) -> bytes:
    """Decode the unpadded base64url ``dns`` parameter of a DoH GET request."""
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise MalformedMessage(f"Invalid base64url dns parameter: {exc}") from exc
