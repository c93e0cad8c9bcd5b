from __future__ import annotations

import base64
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from relayer.api.models import QuoteRequest, QuoteResponse, StatusResponse, SubmitRequest, SubmitResponse
from relayer.core.sponsorship.orchestrator import SponsorshipOrchestrator
from relayer.core.structures.structures import SponsorshipRequest, WalletSignature
from relayer.core.utils.encoding_utils import decode_wire_bytes
from relayer.logging.logger import get_logger

router = APIRouter()
log = get_logger(__name__)


def get_orchestrator(request: Request) -> SponsorshipOrchestrator:
    """The orchestrator built at startup (FastAPI dependency)."""
    return request.app.state.orchestrator


@router.post("/quote", tags=["sponsorship"], response_model=QuoteResponse)  # type: ignore[misc]
async def post_quote(body: QuoteRequest, orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> QuoteResponse:
    """
    Price a sponsored transfer and return the exact message the sender must sign.
    """
    intent = orchestrator.validate(body.fromAddress, body.toAddress, body.amount, body.coin)
    quote = await orchestrator.quote(intent)
    log.debug("[HTTP][QUOTE] id=%s fee=%d", quote.quote_id, quote.fee.final_fee)
    return QuoteResponse(
        quoteId=quote.quote_id,
        fee=quote.fee.final_fee,
        gasUnits=quote.gas.units,
        gasPricePerUnit=quote.gas.unit_price,
        price=str(quote.price.price),
        priceSource=quote.price.source.value,
        breakdown=quote.fee.to_plain_dict(),
        transactionTemplate={
            "message": base64.b64encode(quote.message_bytes).decode("ascii"),
            "blockhash": quote.blockhash,
            "feePayer": quote.fee_payer,
            "expiresAt": quote.expires_at.isoformat(),
        },
    )


@router.post("/submit", tags=["sponsorship"], response_model=SubmitResponse)  # type: ignore[misc]
async def post_submit(body: SubmitRequest, orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> SubmitResponse:
    """
    Co-sign the quoted transfer as fee payer and submit it.
    """
    intent = orchestrator.validate(body.fromAddress, body.toAddress, body.amount, body.coin)
    request = SponsorshipRequest(
        intent=intent,
        signature=WalletSignature(
            signature=decode_wire_bytes(body.signature.signature_bytes),
            public_key=decode_wire_bytes(body.signature.publicKey),
        ),
        quote_id=body.quoteId,
        client_fee=body.fee,
    )
    outcome = await orchestrator.submit(request)
    return SubmitResponse(
        transactionId=outcome.transaction_id,
        hash=outcome.hash,
        status=outcome.status.value,
        fee=outcome.fee,
        gasUsed=outcome.gas_used,
        errorMessage=outcome.error,
    )


@router.get("/status/{tx_hash}", tags=["sponsorship"], response_model=StatusResponse)  # type: ignore[misc]
async def get_status(tx_hash: str, orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> StatusResponse:
    return StatusResponse(**await orchestrator.status(tx_hash))


@router.get("/health", tags=["health"])  # type: ignore[misc]
async def get_health(orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """
    Report sponsor capitalization and the current native price.

    Status is "ok", "undercapitalized" (below reserve) or "degraded" (chain unreachable).
    """
    return await orchestrator.health()


@router.get("/safety-stats", tags=["health"])  # type: ignore[misc]
async def get_safety_stats(orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.safety_stats()


@router.get("/stats", tags=["health"])  # type: ignore[misc]
async def get_stats(orchestrator: SponsorshipOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Ledger totals: counts per status and fees collected on successful transfers."""
    return await orchestrator.stats()
