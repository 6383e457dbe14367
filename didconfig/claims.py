import logging
import re
from typing import Any

from pydantic import AnyUrl, TypeAdapter, ValidationError

from didconfig.errors import InvalidOriginError
from didconfig.hashing import ctype_hash
from didconfig.models import Claim, DidDocument

logger = logging.getLogger(__name__)

CTYPE_DOMAIN_LINKAGE = {
    "$schema": "http://kilt-protocol.org/draft-01/ctype#",
    "title": "Domain Linkage Credential",
    "properties": {
        "origin": {
            "type": "string",
        },
    },
    "type": "object",
}
CTYPE_DOMAIN_LINKAGE_HASH = ctype_hash(CTYPE_DOMAIN_LINKAGE)

_url_adapter = TypeAdapter(AnyUrl)

# characters outside the RFC 3986 URI alphabet, and broken percent escapes
_ILLEGAL_URI_CHARS = re.compile(r"[^a-z0-9:/?#\[\]@!$&'()*+,;=.\-_~%]", re.IGNORECASE)
_BAD_PERCENT_ESCAPE = re.compile(r"%(?![0-9a-f]{2})", re.IGNORECASE)


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str) or not value or value != value.strip():
        return False
    if _ILLEGAL_URI_CHARS.search(value) or _BAD_PERCENT_ESCAPE.search(value):
        return False
    try:
        _url_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def validate_origin(origin: Any) -> str:
    if not is_valid_url(origin):
        raise InvalidOriginError(f"The origin is not a valid url: {origin!r}")
    return origin


def build_domain_claim(origin: str, did_document: DidDocument) -> Claim:
    validate_origin(origin)
    claim = Claim(
        cTypeHash=CTYPE_DOMAIN_LINKAGE_HASH,
        contents={"origin": origin},
        owner=did_document.uri,
    )
    logger.debug("Built domain linkage claim for %s at %s", claim.owner, origin)
    return claim
