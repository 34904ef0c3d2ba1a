"""Pydantic schemas for mint proofs and contract configuration."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MintProofRequest(BaseModel):
    to: str
    event_id: int = Field(alias="eventId", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class MintProofData(BaseModel):
    timestamp: int
    nonce: str  # uint256 as decimal text, too large for a JSON number
    signature: str
    signer_address: str = Field(alias="signerAddress")
    signer_mismatch: bool = Field(alias="signerMismatch")

    model_config = ConfigDict(populate_by_name=True)


class MintProofResponse(BaseModel):
    success: bool = True
    data: MintProofData


class ContractConfig(BaseModel):
    chain_id: int = Field(alias="chainId")
    ticket_contract: Optional[str] = Field(default=None, alias="ticketContract")
    mint_signer: Optional[str] = Field(default=None, alias="mintSigner")

    model_config = ConfigDict(populate_by_name=True)


class ContractConfigResponse(BaseModel):
    success: bool = True
    data: ContractConfig
