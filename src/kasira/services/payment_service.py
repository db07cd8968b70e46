"""Simulated payment-gateway initiators, one per payment method.

The payloads produced here (virtual-account numbers, QR image links) are
display artifacts only; a real gateway client can replace any variant as long
as it returns ``PaymentDetails``.
"""
from __future__ import annotations

import secrets
from typing import Mapping, Optional, Protocol

from kasira.domain.errors import ValidationError
from kasira.domain.models import BANKS, METHOD_CASH, METHOD_QRIS, METHOD_TRANSFER, PaymentDetails

QR_IMAGE_URL = "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={data}"


def _random_digits(count: int) -> str:
    low = 10 ** (count - 1)
    return str(low + secrets.randbelow(9 * low))


def _gateway_order_id() -> str:
    return f"MID-{secrets.token_hex(5).upper()}"


class PaymentInitiator(Protocol):
    method: str

    def initiate(self, amount: float, reference: str, bank: Optional[str] = None) -> PaymentDetails: ...


class CashInitiator:
    method = METHOD_CASH

    def initiate(self, amount: float, reference: str, bank: Optional[str] = None) -> PaymentDetails:
        return PaymentDetails()


class TransferInitiator:
    method = METHOD_TRANSFER

    def __init__(self, va_prefix: str = "88000", digits: int = 8, default_bank: str = "BCA"):
        self.va_prefix = va_prefix
        self.digits = digits
        self.default_bank = default_bank

    def initiate(self, amount: float, reference: str, bank: Optional[str] = None) -> PaymentDetails:
        chosen = (bank or self.default_bank).strip().upper()
        if chosen not in BANKS:
            raise ValidationError(f"Unsupported bank '{chosen}'. Use one of: {', '.join(BANKS)}.")
        return PaymentDetails(
            bank=chosen,
            va_number=f"{self.va_prefix}{_random_digits(self.digits)}",
            gateway_order_id=_gateway_order_id(),
        )


class QrisInitiator:
    method = METHOD_QRIS

    def __init__(self, label: str = "KASIRA-TX"):
        self.label = label

    def initiate(self, amount: float, reference: str, bank: Optional[str] = None) -> PaymentDetails:
        return PaymentDetails(
            qris_url=QR_IMAGE_URL.format(data=f"{self.label}-{reference}"),
            gateway_order_id=_gateway_order_id(),
        )


def default_initiators(default_bank: str = "BCA") -> dict[str, PaymentInitiator]:
    return {
        METHOD_CASH: CashInitiator(),
        METHOD_TRANSFER: TransferInitiator(default_bank=default_bank),
        METHOD_QRIS: QrisInitiator(),
    }


def initiator_for(method: str, initiators: Mapping[str, PaymentInitiator]) -> PaymentInitiator:
    initiator = initiators.get((method or "").strip().upper())
    if initiator is None:
        raise ValidationError(f"Unsupported payment method '{method}'.")
    return initiator
