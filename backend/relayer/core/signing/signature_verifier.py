from __future__ import annotations

from solders.pubkey import Pubkey
from solders.signature import Signature

from relayer.core.errors import AddressMismatch, SignatureInvalid
from relayer.core.structures.structures import SenderAuthenticator
from relayer.core.utils.format_utils import _tail
from relayer.logging.logger import get_logger

log = get_logger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def _normalize_signature(signature_bytes: bytes) -> bytes:
    """
    Wallets sometimes return the signature with a prefix (scheme tag, or
    the full signed transaction); the ed25519 signature is the trailing 64 bytes.
    """
    if len(signature_bytes) > SIGNATURE_LENGTH:
        return signature_bytes[-SIGNATURE_LENGTH:]
    if len(signature_bytes) < SIGNATURE_LENGTH:
        raise SignatureInvalid(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature_bytes)}"
        )
    return signature_bytes


def _claimed_address_bytes(claimed_sender: str) -> bytes:
    try:
        return bytes(Pubkey.from_string(claimed_sender))
    except ValueError as exc:
        raise AddressMismatch("Claimed sender is not a valid account address") from exc


def verify(
        signature_bytes: bytes,
        public_key_bytes: bytes,
        canonical_message: bytes,
        claimed_sender: str,
) -> SenderAuthenticator:
    """
    Verify a wallet signature against the server-rebuilt message.

    One path only:
      1) both signature and public key are required
      2) the public key must derive exactly the claimed sender address
      3) the signature is normalized to 64 bytes
      4) ed25519 verification over the canonical message bytes

    Raises:
        AddressMismatch when the key does not belong to the claimed sender.
        SignatureInvalid for every other failure.
    """
    if not signature_bytes:
        raise SignatureInvalid("Signature is required")
    if not public_key_bytes:
        raise SignatureInvalid("Public key is required")
    if len(public_key_bytes) != PUBLIC_KEY_LENGTH:
        raise SignatureInvalid(
            f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_key_bytes)}"
        )

    public_key = Pubkey.from_bytes(public_key_bytes)
    if bytes(public_key) != _claimed_address_bytes(claimed_sender):
        log.warning("[SIGNATURE][MISMATCH] key=…%s claimed=…%s", _tail(str(public_key)), _tail(claimed_sender))
        raise AddressMismatch("Public key does not match the sender address")

    signature = Signature.from_bytes(_normalize_signature(signature_bytes))
    if not signature.verify(public_key, canonical_message):
        log.warning("[SIGNATURE][INVALID] Verification failed for sender=…%s", _tail(claimed_sender))
        raise SignatureInvalid("Signature does not match the transaction")

    log.debug("[SIGNATURE][OK] sender=…%s", _tail(claimed_sender))
    return SenderAuthenticator(public_key=public_key, signature=signature)
