"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003

    # Lifecycle errors (61xxx)
    INVALID_AMOUNT = 61000
    INVALID_METHOD = 61001
    INVALID_STATE = 61002
    STATE_CONFLICT = 61003
    PAYMENT_NOT_FOUND = 61004
    REFUND_FAILED = 61005


# Gateway intent status → whether the money has settled successfully
GATEWAY_SETTLED_STATUSES = {
    "stripe": {"succeeded"},
    "http": {"succeeded", "paid", "captured"},
    "sandbox": {"succeeded"},
}

# Gateway refund status → whether the refund has been accepted
GATEWAY_REFUND_ACCEPTED_STATUSES = {
    "stripe": {"succeeded", "pending"},
    "http": {"succeeded", "accepted", "pending"},
    "sandbox": {"succeeded"},
}
