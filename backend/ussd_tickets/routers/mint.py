"""Mint proof and contract configuration routes."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from ussd_tickets.config import settings
from ussd_tickets.dependencies import get_mint_authorizer
from ussd_tickets.errors import MintRequestError, SignerNotConfiguredError
from ussd_tickets.schemas.mint_proof import (
    ContractConfig,
    ContractConfigResponse,
    MintProofData,
    MintProofRequest,
    MintProofResponse,
)
from ussd_tickets.services.mint_authorization import MintAuthorizer

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/mint-proof", response_model=MintProofResponse)
def create_mint_proof(
    payload: MintProofRequest,
    authorizer: MintAuthorizer = Depends(get_mint_authorizer),
):
    """Sign a single-use authorization to mint a ticket for ``to`` at ``eventId``."""
    try:
        proof = authorizer.issue(payload.to, payload.event_id)
    except SignerNotConfiguredError as e:
        logger.error("Mint proof requested but %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Mint signer key not configured on server",
        )
    except MintRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if proof.signer_mismatch:
        logger.warning("Issued mint proof with mismatched signer %s", proof.signer_address)

    return MintProofResponse(
        data=MintProofData(
            timestamp=proof.timestamp,
            nonce=str(proof.nonce),
            signature=proof.signature_hex,
            signer_address=proof.signer_address,
            signer_mismatch=proof.signer_mismatch,
        )
    )


@router.get("/contracts/config", response_model=ContractConfigResponse)
def contract_config(authorizer: MintAuthorizer = Depends(get_mint_authorizer)):
    """Chain id, ticket contract and the signer the contract should trust."""
    return ContractConfigResponse(
        data=ContractConfig(
            chain_id=settings.CHAIN_ID,
            ticket_contract=settings.TICKET_CONTRACT_ADDRESS or None,
            mint_signer=settings.MINT_SIGNER_ADDRESS or authorizer.signer_address,
        )
    )
