"""
Payment domain events.

Dataclass events record committed payment lifecycle facts for downstream handling
(e.g., booking confirmation, notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: str
    student_id: str
    reference_type: str
    reference_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCreated(PaymentEvent):
    amount: str = ""
    method: str = ""


@dataclass
class PaymentProcessingStarted(PaymentEvent):
    gateway_transaction_id: Optional[str] = None


@dataclass
class PaymentSucceeded(PaymentEvent):
    gateway_transaction_id: Optional[str] = None


@dataclass
class PaymentFailed(PaymentEvent):
    gateway_transaction_id: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    amount: str = ""
    reason: str = ""


@dataclass
class PaymentDeleted(PaymentEvent):
    pass
