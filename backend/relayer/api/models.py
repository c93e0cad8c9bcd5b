from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

WireValue = Union[str, List[int]]


class QuoteRequest(BaseModel):
    """Transfer intent to be priced."""
    fromAddress: str = Field(..., description="Sender account (base58).")
    toAddress: str = Field(..., description="Recipient account (base58).")
    amount: Union[int, str] = Field(..., description="Amount in stable-token base units.")
    coin: str = Field(..., description="Stable-token mint address.")


class SignaturePayload(BaseModel):
    """Wallet signature over the quoted message: 0x-hex, base58 or a byte array."""
    model_config = ConfigDict(populate_by_name=True)

    signature_bytes: Optional[WireValue] = Field(None, alias="bytes", description="64-byte ed25519 signature.")
    publicKey: Optional[WireValue] = Field(None, description="32-byte ed25519 public key.")


class SubmitRequest(QuoteRequest):
    quoteId: Optional[str] = Field(None, description="Quote to submit against.")
    fee: Optional[int] = Field(None, description="Advisory client fee; the server fee always applies.")
    signature: SignaturePayload


class TransactionTemplate(BaseModel):
    message: str = Field(..., description="Base64 serialized message to sign.")
    blockhash: str
    feePayer: str
    expiresAt: str


class QuoteResponse(BaseModel):
    quoteId: str
    fee: int
    gasUnits: int
    gasPricePerUnit: int
    price: str
    priceSource: str
    breakdown: Dict[str, Any]
    transactionTemplate: TransactionTemplate


class SubmitResponse(BaseModel):
    transactionId: str
    hash: str
    status: str
    fee: int
    gasUsed: Optional[int] = None
    errorMessage: Optional[str] = None


class StatusResponse(BaseModel):
    hash: str
    status: str
    gasUsed: Optional[int] = None
    errorMessage: Optional[str] = None
