"""Claim hashing for domain linkage credentials.

Every claim field (and the owner) becomes one canonical JSON statement. Each
statement is salted with a random nonce, and the salted digests are folded,
together with legitimations and the delegation id, into the credential's root
hash. The root hash is the payload that the owner's assertion key signs.
"""

import hashlib
import json
import uuid
from typing import Any, Dict, List, Optional, Tuple

from didconfig.models import Claim, Credential


def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def blake2_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def bytes_to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def hex_to_bytes(value: str) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"Not a 0x-prefixed hex string: {value!r}")
    return bytes.fromhex(value[2:])


def is_hex(value: Any, bit_length: Optional[int] = None) -> bool:
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    body = value[2:]
    if len(body) % 2:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return bit_length is None or len(body) * 4 == bit_length


def ctype_hash(schema: Dict[str, Any]) -> str:
    schema_without_id = {k: v for k, v in schema.items() if k != "$id"}
    return bytes_to_hex(blake2_256(canonical_json(schema_without_id)))


def claim_statements(claim: Claim) -> List[bytes]:
    vocab = f"kilt:ctype:{claim.cTypeHash}#"
    statements = [canonical_json({"@id": claim.owner})]
    for key in sorted(claim.contents):
        statements.append(canonical_json({vocab + key: claim.contents[key]}))
    return statements


def hash_statements(
    claim: Claim, nonces: Optional[Dict[str, str]] = None
) -> Tuple[List[str], Dict[str, str]]:
    """Return the sorted salted statement hashes and the nonce map used to salt them.

    Passing an existing nonce map reproduces the hashes of a disclosed credential.
    """
    nonce_map: Dict[str, str] = {}
    claim_hashes = []
    for statement in claim_statements(claim):
        digest = bytes_to_hex(blake2_256(statement))
        if nonces is not None:
            if digest not in nonces:
                raise ValueError(f"Nonce map has no entry for statement {digest}")
            nonce = nonces[digest]
        else:
            nonce = str(uuid.uuid4())
        nonce_map[digest] = nonce
        claim_hashes.append(bytes_to_hex(blake2_256((nonce + digest).encode("utf-8"))))
    return sorted(claim_hashes), nonce_map


def calculate_root_hash(
    claim_hashes: List[str], legitimations: List[Any], delegation_id: Optional[str]
) -> str:
    parts = [hex_to_bytes(h) for h in claim_hashes]
    parts.extend(hex_to_bytes(leg["rootHash"] if isinstance(leg, dict) else leg.rootHash) for leg in legitimations)
    if delegation_id:
        parts.append(hex_to_bytes(delegation_id))
    return bytes_to_hex(blake2_256(b"".join(parts)))


def credential_from_claim(
    claim: Claim, legitimations: Optional[List[Any]] = None, delegation_id: Optional[str] = None
) -> Credential:
    legitimations = legitimations or []
    claim_hashes, nonce_map = hash_statements(claim)
    return Credential(
        claim=claim,
        claimHashes=claim_hashes,
        claimNonceMap=nonce_map,
        rootHash=calculate_root_hash(claim_hashes, legitimations, delegation_id),
        delegationId=delegation_id,
        legitimations=legitimations,
    )


def verify_root_hash(credential: Credential) -> bool:
    try:
        claim_hashes, _ = hash_statements(credential.claim, credential.claimNonceMap)
        if claim_hashes != sorted(credential.claimHashes):
            return False
        expected = calculate_root_hash(credential.claimHashes, credential.legitimations, credential.delegationId)
    except (ValueError, AttributeError, KeyError, TypeError):
        return False
    return expected == credential.rootHash
