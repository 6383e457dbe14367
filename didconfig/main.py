import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from didconfig import config
from didconfig.dids import DidResolver, assertion_signer, default_resolver, resolve_document
from didconfig.errors import DidConfigurationError
from didconfig.issuer import create_credential
from didconfig.presentation import get_domain_linkage_presentation
from didconfig.verify import WELL_KNOWN_PATH, verify_did_config_presentation, verify_domain_linkage

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI()


class IssueRequest(BaseModel):
    origin: str
    expiration_date: Optional[datetime] = None


class VerifyRequest(BaseModel):
    did: str
    origin: str
    presentation: Optional[Dict[str, Any]] = None


def get_resolver() -> DidResolver:
    return default_resolver()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
        yield client


def load_private_jwk() -> Dict[str, Any]:
    path = Path(config.PRIVATE_JWK_PATH)
    if not path.exists():
        raise HTTPException(status_code=404, detail="Signing key not found")
    return json.loads(path.read_text())


@app.get(WELL_KNOWN_PATH)
def get_did_configuration():
    path = Path(config.PRESENTATION_PATH)
    if not path.exists():
        raise HTTPException(status_code=404, detail="No DID configuration published")
    return JSONResponse(json.loads(path.read_text()))


@app.post("/did-configuration/issue")
async def issue_did_configuration(req: IssueRequest, resolver: DidResolver = Depends(get_resolver)):
    if not config.DID:
        raise HTTPException(status_code=500, detail="DIDCONFIG_DID is not configured")
    private_jwk = load_private_jwk()

    try:
        document = await resolve_document(config.DID, resolver)
        signer = assertion_signer(private_jwk, document)
        credential = await create_credential(signer, req.origin, config.DID, resolver=resolver)
        presentation = await get_domain_linkage_presentation(
            credential, req.expiration_date, resolver=resolver
        )
    except DidConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    data = presentation.to_json()
    Path(config.PRESENTATION_PATH).write_text(json.dumps(data, indent=2))
    logger.info("Published DID configuration for %s to %s", req.origin, config.PRESENTATION_PATH)
    return data


@app.post("/did-configuration/verify")
async def verify_did_configuration(
    req: VerifyRequest,
    resolver: DidResolver = Depends(get_resolver),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    try:
        if req.presentation is None:
            await verify_domain_linkage(req.did, req.origin, resolver=resolver, client=client)
        else:
            await verify_did_config_presentation(req.did, req.presentation, req.origin, resolver=resolver)
    except DidConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "valid",
        "did": req.did,
        "origin": req.origin,
    }
