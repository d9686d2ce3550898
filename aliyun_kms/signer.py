"""
Canonical query string and HMAC-SHA1 request signing.

The server recomputes the signature from the query it receives, so the
canonical form must be byte-for-byte reproducible:

    canonical  = "&".join(f"{enc(k)}={enc(v)}" for k, v in sorted(params))
    to_sign    = f"{METHOD}&{enc('/')}&{enc(canonical)}"
    Signature  = base64(HMAC-SHA1(key=f"{secret}&", msg=to_sign))

where enc is RFC 3986 percent-encoding (only A-Z a-z 0-9 - _ . ~ left as is).
"""

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional
from urllib.parse import quote

from .credentials import Credential
from .errors import SigningError

SIGNATURE_METHOD = "HMAC-SHA1"
SIGNATURE_VERSION = "1.0"
RESPONSE_FORMAT = "json"

QueryParameters = MutableMapping[str, Any]


def percent_encode(value: Any) -> str:
    """Percent-encode a value per RFC 3986."""
    return quote(_to_text(value), safe="~")


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-02T03:04:05.678Z."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def drop_empty(query: QueryParameters) -> QueryParameters:
    """Remove parameters whose value is falsy (None, "", 0, False), in place."""
    for key in [k for k, v in query.items() if not v]:
        del query[key]
    return query


def canonical_query_string(query: QueryParameters) -> str:
    """Sorted, percent-encoded k=v pairs joined with '&'. Falsy values are skipped."""
    return "&".join(
        f"{percent_encode(key)}={percent_encode(value)}"
        for key, value in sorted(query.items())
        if value
    )


def string_to_sign(method: str, canonical: str) -> str:
    return f"{method.upper()}&{percent_encode('/')}&{percent_encode(canonical)}"


def compute_signature(text: str, secret: str) -> str:
    """Base64 HMAC-SHA1 of text keyed with '{secret}&'."""
    key = f"{secret or ''}&".encode("utf-8")
    digest = hmac.new(key, text.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def sign(
    query: QueryParameters,
    method: str,
    credential: Credential,
    api_version: str,
    timestamp: Optional[str] = None,
) -> tuple[QueryParameters, str]:
    """
    Add the common parameters to query and sign it, in place.

    Falsy parameters are removed from query before signing, so the
    mapping left behind is exactly what goes on the wire.

    Args:
        query: Action parameters; mutated
        method: HTTP method the request will be sent with
        credential: Credential snapshot for this attempt
        api_version: KMS API version
        timestamp: Override the current time (for reproducible signatures)

    Returns:
        (query, signature), with query["Signature"] set

    Raises:
        SigningError: If the parameters cannot be signed
    """
    query.pop("Signature", None)
    query["Format"] = RESPONSE_FORMAT
    query["Version"] = api_version
    query["AccessKeyId"] = credential.access_key_id
    query["SignatureMethod"] = SIGNATURE_METHOD
    query["Timestamp"] = timestamp or format_timestamp()
    query["SignatureVersion"] = SIGNATURE_VERSION
    query.update(credential.query_parameters())

    drop_empty(query)

    try:
        canonical = canonical_query_string(query)
        signature = compute_signature(
            string_to_sign(method or "GET", canonical),
            credential.access_key_secret,
        )
    except (TypeError, ValueError, UnicodeError) as e:
        raise SigningError(f"Cannot sign request: {e}") from e

    query["Signature"] = signature
    return query, signature
