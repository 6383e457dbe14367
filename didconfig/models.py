from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerificationMethod(BaseModel):
    id: str  # fragment, e.g. "#0"
    type: str
    controller: str
    publicKeyJwk: Dict[str, Any]


class DidDocument(BaseModel):
    uri: str
    authentication: List[VerificationMethod] = []
    assertionMethod: Optional[List[VerificationMethod]] = None
    capabilityDelegation: Optional[List[VerificationMethod]] = None
    keyAgreement: Optional[List[VerificationMethod]] = None
    service: Optional[List[Dict[str, Any]]] = None


class DidResolutionResult(BaseModel):
    document: Optional[DidDocument] = None


class SignRequest(BaseModel):
    data: bytes
    did: str
    key_relationship: str = "assertionMethod"


class SignResponse(BaseModel):
    signature: bytes
    key_type: str
    key_uri: str


class Claim(BaseModel):
    cTypeHash: str
    contents: Dict[str, Any]
    owner: str


class Credential(BaseModel):
    claim: Claim
    claimHashes: List[str]
    claimNonceMap: Dict[str, str]
    rootHash: str
    delegationId: Optional[str] = None
    legitimations: List[Any] = []


class ClaimerSignature(BaseModel):
    keyUri: str
    signature: str
    challenge: Optional[str] = None


class CredentialPresentation(Credential):
    claimerSignature: ClaimerSignature


class CredentialSubject(BaseModel):
    id: str
    origin: str
    rootHash: Optional[str] = None


class SelfSignedProof(BaseModel):
    type: str
    proofPurpose: str
    verificationMethod: str
    signature: str
    challenge: Optional[str] = None


class DomainLinkageCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context: List[str] = Field(alias="@context")
    id: str
    issuer: str
    issuanceDate: str
    expirationDate: str
    type: List[str]
    credentialSubject: CredentialSubject
    proof: SelfSignedProof


class DomainLinkagePresentation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context: str = Field(alias="@context")
    linked_dids: List[DomainLinkageCredential]

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
