from __future__ import annotations

from solders.pubkey import Pubkey

from relayer.core.errors import ValidationError
from relayer.core.structures.structures import TransferIntent
from relayer.core.utils.amount_utils import parse_base_units


def _require_address(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    text = value.strip()
    try:
        Pubkey.from_string(text)
    except ValueError as exc:
        raise ValidationError(f"{field_name} is not a valid Solana address") from exc
    return text


def validate_intent(
        sender: object,
        recipient: object,
        amount: object,
        coin: object,
        supported_coin: str,
        sponsor_address: str,
) -> TransferIntent:
    """
    Normalize and check a transfer intent before any chain or oracle call.

    Raises:
        ValidationError with reason `validation-error` or `unsupported-coin`.
    """
    sender_text = _require_address(sender, "fromAddress")
    recipient_text = _require_address(recipient, "toAddress")
    coin_text = _require_address(coin, "coin")

    try:
        amount_value = parse_base_units(amount)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    if coin_text != supported_coin:
        raise ValidationError(f"Coin {coin_text} is not sponsored", reason="unsupported-coin")
    if sender_text == sponsor_address:
        raise ValidationError("The sponsor account cannot be the sender")
    if sender_text == recipient_text:
        raise ValidationError("Sender and recipient must differ")

    return TransferIntent(sender=sender_text, recipient=recipient_text, amount=amount_value, coin=coin_text)
