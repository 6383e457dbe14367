import base64
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import httpx
from cryptography.exceptions import InvalidSignature
from jwcrypto import jwk
from jwcrypto.common import JWException

from didconfig.errors import (
    DidResolutionError,
    InvalidDidError,
    MissingAssertionKeyError,
    SignatureVerificationError,
    UnsupportedKeyTypeError,
)
from didconfig.hashing import hex_to_bytes
from didconfig.models import (
    DidDocument,
    DidResolutionResult,
    SignRequest,
    SignResponse,
    VerificationMethod,
)

logger = logging.getLogger(__name__)

SignCallback = Callable[[SignRequest], Awaitable[SignResponse]]

VERIFICATION_RELATIONSHIPS = ("authentication", "assertionMethod", "capabilityDelegation", "keyAgreement")
SIGNATURE_RELATIONSHIPS = ("authentication", "assertionMethod", "capabilityDelegation")

_IDCHAR = r"(?:[A-Za-z0-9._-]|%[0-9A-Fa-f]{2})"
_DID_RE = re.compile(rf"^did:[a-z0-9]+:(?:{_IDCHAR}*:)*{_IDCHAR}+$")


def validate_did_uri(uri: Any) -> str:
    if not isinstance(uri, str) or not _DID_RE.match(uri):
        raise InvalidDidError(f"Not a valid DID: {uri!r}")
    return uri


def did_method(did: str) -> str:
    return validate_did_uri(did).split(":", 2)[1]


def parse_key_uri(key_uri: Any) -> Tuple[str, str]:
    """Split `did:...#key` into the DID and its `#key` fragment."""
    if not isinstance(key_uri, str) or "#" not in key_uri:
        raise InvalidDidError(f"Not a valid DID key URI: {key_uri!r}")
    did, fragment = key_uri.split("#", 1)
    if not fragment:
        raise InvalidDidError(f"DID key URI has an empty fragment: {key_uri!r}")
    return validate_did_uri(did), "#" + fragment


def first_assertion_key(document: DidDocument) -> VerificationMethod:
    if not document.assertionMethod:
        raise MissingAssertionKeyError(
            f"DID {document.uri} has no assertion key: please add an assertion key"
        )
    return document.assertionMethod[0]


class DidResolver(Protocol):
    async def resolve(self, did: str) -> DidResolutionResult:
        ...


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _fragment(did: str, method_id: str) -> str:
    if method_id.startswith(did + "#"):
        return method_id[len(did):]
    if method_id.startswith("#"):
        return method_id
    raise ValueError(f"Verification method {method_id} is not controlled by {did}")


def document_from_json(data: Dict[str, Any]) -> DidDocument:
    """Build a DidDocument from a W3C DID document.

    Verification method ids are normalized to `#fragment` form so that
    `document.uri + method.id` is always the full key URI.
    """
    did = validate_did_uri(data.get("id"))
    by_id: Dict[str, VerificationMethod] = {}

    def to_method(entry: Dict[str, Any]) -> Optional[VerificationMethod]:
        # TODO: accept publicKeyMultibase (Ed25519VerificationKey2020) keys
        if "publicKeyJwk" not in entry:
            logger.debug("Skipping verification method %s without publicKeyJwk", entry.get("id"))
            return None
        return VerificationMethod(
            id=_fragment(did, entry["id"]),
            type=entry.get("type", "JsonWebKey2020"),
            controller=entry.get("controller", did),
            publicKeyJwk=entry["publicKeyJwk"],
        )

    for entry in data.get("verificationMethod", []):
        method = to_method(entry)
        if method is not None:
            by_id[method.id] = method

    relationships: Dict[str, Any] = {}
    for name in VERIFICATION_RELATIONSHIPS:
        if name not in data:
            continue
        methods = []
        for ref in data[name]:
            if isinstance(ref, str):
                method = by_id.get(_fragment(did, ref))
            else:
                method = to_method(ref)
            if method is not None:
                methods.append(method)
        relationships[name] = methods

    return DidDocument(uri=did, service=data.get("service"), **relationships)


class JwkDidResolver:
    """Resolves `did:jwk` identifiers without any network access."""

    async def resolve(self, did: str) -> DidResolutionResult:
        prefix = "did:jwk:"
        if not isinstance(did, str) or not did.startswith(prefix):
            return DidResolutionResult()
        try:
            public_jwk = json.loads(_b64url_decode(did[len(prefix):]))
        except ValueError:
            logger.debug("Undecodable did:jwk %s", did)
            return DidResolutionResult()
        if not isinstance(public_jwk, dict) or "d" in public_jwk:
            return DidResolutionResult()

        method = VerificationMethod(id="#0", type="JsonWebKey2020", controller=did, publicKeyJwk=public_jwk)
        use = public_jwk.get("use")
        relationships: Dict[str, Any] = {}
        if use != "enc":
            relationships.update({name: [method] for name in SIGNATURE_RELATIONSHIPS})
        if use != "sig":
            relationships["keyAgreement"] = [method]
        relationships.setdefault("authentication", [])
        return DidResolutionResult(document=DidDocument(uri=did, **relationships))


class HttpDidResolver:
    """Resolves DIDs through a universal-resolver style HTTP endpoint."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    async def _get(self, url: str) -> httpx.Response:
        headers = {"Accept": "application/did+ld+json, application/json"}
        if self.client is not None:
            return await self.client.get(url, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, headers=headers)

    async def resolve(self, did: str) -> DidResolutionResult:
        url = f"{self.base_url}/1.0/identifiers/{did}"
        try:
            r = await self._get(url)
        except httpx.HTTPError as e:
            raise DidResolutionError(f"Failed to resolve {did}: {e}") from e

        if r.status_code in (404, 410):
            return DidResolutionResult()
        if r.status_code != 200:
            raise DidResolutionError(f"Resolver returned HTTP {r.status_code} for {did}")

        try:
            data = r.json()
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            document = document_from_json(data.get("didDocument", data))
        except ValueError as e:
            raise DidResolutionError(f"Resolver returned an invalid DID document for {did}: {e}") from e

        if document.uri != did:
            raise DidResolutionError(f"Resolver returned document {document.uri} for {did}")
        return DidResolutionResult(document=document)


class CompositeDidResolver:
    """Dispatches resolution by DID method, with an optional fallback resolver."""

    def __init__(self, resolvers: Dict[str, DidResolver], fallback: Optional[DidResolver] = None):
        self.resolvers = resolvers
        self.fallback = fallback

    async def resolve(self, did: str) -> DidResolutionResult:
        try:
            method = did_method(did)
        except InvalidDidError:
            return DidResolutionResult()
        resolver = self.resolvers.get(method, self.fallback)
        if resolver is None:
            logger.debug("No resolver configured for did:%s", method)
            return DidResolutionResult()
        return await resolver.resolve(did)


async def resolve_document(did: str, resolver: DidResolver) -> DidDocument:
    result = await resolver.resolve(did)
    if result is None or result.document is None:
        raise DidResolutionError(f"No DID document found for {did}: please create a full DID")
    return result.document


def generate_jwk_did(crv: str = "Ed25519", use: Optional[str] = None) -> Dict[str, Any]:
    key = jwk.JWK.generate(kty="OKP", crv=crv)
    pub = key.export(private_key=False, as_dict=True)
    private = key.export(private_key=True, as_dict=True)
    if use:
        pub["use"] = use
        private["use"] = use

    pub_str = json.dumps(pub, separators=(",", ":")).encode("utf-8")
    did = f"did:jwk:{_b64url_encode(pub_str)}"
    return {
        "did": did,
        "private_jwk": private,
        "public_jwk": pub,
    }


def _require_ed25519(key_data: Dict[str, Any]) -> None:
    if key_data.get("kty") != "OKP" or key_data.get("crv") != "Ed25519":
        raise UnsupportedKeyTypeError(
            f"Unsupported key type {key_data.get('kty')}/{key_data.get('crv')}: only Ed25519 keys can sign"
        )


def assertion_signer(private_jwk: Dict[str, Any], did_document: DidDocument) -> SignCallback:
    """Return a signing capability bound to the document's first assertion key."""
    assertion_key = first_assertion_key(did_document)
    _require_ed25519(private_jwk)
    key = jwk.JWK(**private_jwk)
    if key.thumbprint() != jwk.JWK(**assertion_key.publicKeyJwk).thumbprint():
        raise MissingAssertionKeyError(f"Private key does not match assertion key {assertion_key.id}")
    key_uri = f"{did_document.uri}{assertion_key.id}"

    async def sign(request: SignRequest) -> SignResponse:
        signature = key.get_op_key("sign").sign(request.data)
        return SignResponse(signature=signature, key_type="ed25519", key_uri=key_uri)

    return sign


async def verify_did_signature(
    *,
    expected_verification_method: str,
    key_uri: str,
    signature: str,
    message: bytes,
    resolver: DidResolver,
    expected_signer: Optional[str] = None,
) -> None:
    """Verify `signature` (0x hex) over `message` with the DID key at `key_uri`.

    The key must be listed under `expected_verification_method` in the
    resolved document of its DID. When `expected_signer` is given the key must
    also belong to that DID. Raises SignatureVerificationError otherwise.
    """
    if expected_verification_method not in VERIFICATION_RELATIONSHIPS:
        raise SignatureVerificationError(f"Unknown verification relationship {expected_verification_method}")

    try:
        did, fragment = parse_key_uri(key_uri)
    except InvalidDidError as e:
        raise SignatureVerificationError(str(e)) from e
    if expected_signer is not None and did != expected_signer:
        raise SignatureVerificationError(f"Key {key_uri} does not belong to {expected_signer}")

    try:
        document = await resolve_document(did, resolver)
    except DidResolutionError as e:
        raise SignatureVerificationError(f"Cannot resolve signing key {key_uri}: {e}") from e

    methods = getattr(document, expected_verification_method) or []
    method = next((m for m in methods if m.id == fragment), None)
    if method is None:
        raise SignatureVerificationError(
            f"Key {key_uri} is not an {expected_verification_method} key of {did}"
        )

    try:
        signature_bytes = hex_to_bytes(signature)
    except ValueError as e:
        raise SignatureVerificationError(f"Malformed signature: {e}") from e
    if not signature_bytes:
        raise SignatureVerificationError("Empty signature")

    _require_ed25519(method.publicKeyJwk)
    try:
        public_key = jwk.JWK(**method.publicKeyJwk).get_op_key("verify")
    except (ValueError, TypeError, JWException) as e:
        raise SignatureVerificationError(f"Unusable public key for {key_uri}: {e}") from e
    try:
        public_key.verify(signature_bytes, message)
    except InvalidSignature as e:
        raise SignatureVerificationError(f"Invalid signature for {key_uri}") from e
    logger.debug("Verified %s signature of %s", expected_verification_method, key_uri)


def default_resolver() -> DidResolver:
    from didconfig import config

    return CompositeDidResolver(
        {"jwk": JwkDidResolver()},
        fallback=HttpDidResolver(config.RESOLVER_URL, timeout=config.HTTP_TIMEOUT),
    )
