# voucher_gateway/credentials.py
"""Secret generation, fingerprinting and the shareable payload formats.

A voucher is redeemed by whoever holds its (id, secret) pair. Only the
sha256 fingerprint of the secret is ever stored; the raw secret leaves the
service exactly once, inside one of the payloads built here.

Supported payloads:
- link:      https://host/redeem?cid=<id>&t=<secret>
- record:    {"id": ..., "secret": ...}  (the legacy {"cid", "token"} too)
- data_url:  data:application/json;base64,<base64 of the record JSON>
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
import secrets
from enum import Enum
from typing import Any, Dict, Mapping, Tuple
from urllib.parse import parse_qs, urlencode, urlsplit

from voucher_gateway.errors import DecodeError

DEFAULT_SECRET_BYTES = 20
MIN_SECRET_BYTES = 16

# first alias is what we emit, the rest are accepted on input
ID_KEYS = ("id", "cid")
SECRET_KEYS = ("secret", "token", "t")
LINK_ID_PARAM = "cid"
LINK_SECRET_PARAM = "t"

DATA_URL_PREFIX = "data:application/json;base64,"


class PayloadFormat(str, Enum):
    LINK = "link"
    RECORD = "record"
    DATA_URL = "data_url"


def generate_secret(nbytes: int = DEFAULT_SECRET_BYTES) -> str:
    if nbytes < MIN_SECRET_BYTES:
        raise ValueError(f"secret must carry at least {MIN_SECRET_BYTES * 8} bits")
    return secrets.token_hex(nbytes)


def fingerprint(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _record(voucher_id: str, secret: str) -> Dict[str, str]:
    return {"id": str(voucher_id), "secret": secret}


def encode_payload(
    voucher_id: str,
    secret: str,
    fmt: PayloadFormat | str = PayloadFormat.LINK,
    *,
    base_url: str = "",
    redeem_path: str = "/redeem",
) -> Any:
    """Build the payload handed to the voucher holder.

    Returns a string for ``link`` and ``data_url``, a dict for ``record``.
    """
    fmt = PayloadFormat(fmt)

    if fmt is PayloadFormat.RECORD:
        return _record(voucher_id, secret)

    if fmt is PayloadFormat.DATA_URL:
        raw = json.dumps(_record(voucher_id, secret), separators=(",", ":"))
        return DATA_URL_PREFIX + base64.b64encode(raw.encode("utf-8")).decode("ascii")

    query = urlencode({LINK_ID_PARAM: str(voucher_id), LINK_SECRET_PARAM: secret})
    path = "/" + redeem_path.lstrip("/") if redeem_path else ""
    return f"{base_url.rstrip('/')}{path}?{query}"


def _pick(source: Mapping[str, Any], keys: Tuple[str, ...], label: str, *, strip: bool = True) -> str:
    found = [source[k] for k in keys if k in source]
    if not found:
        raise DecodeError(f"payload is missing {label}")
    if len(found) > 1 and len(set(map(str, found))) > 1:
        raise DecodeError(f"payload carries conflicting {label} values")

    value = found[0]
    if isinstance(value, list):
        # parse_qs hands back lists; a repeated parameter is ambiguous
        if len(value) != 1:
            raise DecodeError(f"payload carries {label} more than once")
        value = value[0]
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise DecodeError(f"payload {label} has an unsupported type")

    value = str(value)
    if strip:
        value = value.strip()
    if not value:
        raise DecodeError(f"payload {label} is empty")
    return value


def _from_mapping(data: Mapping[str, Any]) -> Tuple[str, str]:
    # the secret must match byte for byte; only the id is trimmed
    return _pick(data, ID_KEYS, "id"), _pick(data, SECRET_KEYS, "secret", strip=False)


def _from_json_text(text: str) -> Tuple[str, str]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise DecodeError("payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise DecodeError("payload JSON must be an object")
    return _from_mapping(data)


def _from_data_url(text: str) -> Tuple[str, str]:
    header, sep, body = text.partition(",")
    if not sep:
        raise DecodeError("data URL has no body")
    if header.endswith(";base64"):
        try:
            body = base64.b64decode(body, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise DecodeError("data URL body is not valid base64") from e
    return _from_json_text(body)


def _from_link(text: str) -> Tuple[str, str]:
    parts = urlsplit(text)
    query = parts.query
    if not query and "=" in text and not parts.scheme:
        # bare "cid=...&t=..." query string
        query = text.lstrip("?")
    if not query:
        raise DecodeError("payload is not a recognized format")
    return _from_mapping(parse_qs(query, keep_blank_values=True))


def decode_payload(payload: Any) -> Tuple[str, str]:
    """Extract ``(id, secret)`` from any supported payload form.

    Raises DecodeError if the payload is not recognized or either field is
    missing.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("payload is not UTF-8 text") from e

    if isinstance(payload, Mapping):
        return _from_mapping(payload)

    if not isinstance(payload, str):
        raise DecodeError("payload must be a string or an object")

    text = payload.strip()
    if not text:
        raise DecodeError("payload is empty")
    if text.startswith("data:"):
        return _from_data_url(text)
    if text.startswith("{"):
        return _from_json_text(text)
    return _from_link(text)
