"""Time-volume ledger: service level balances and work entries."""

from .accountant import VolumeAccountant, balance_delta, billable_amount, round_minutes
from .billing import BillingService, BillingSummary
from .models import LedgerResult, RenewalType, ServiceLevel, WorkEntry
from .renewal import RenewalService, add_months, next_renewal_after, renew
from .repository import LedgerRepository
from .service_levels import ServiceLevelService
from .threshold import ThresholdNotifier

__all__ = [
    "BillingService",
    "BillingSummary",
    "LedgerRepository",
    "LedgerResult",
    "RenewalService",
    "RenewalType",
    "ServiceLevel",
    "ServiceLevelService",
    "ThresholdNotifier",
    "VolumeAccountant",
    "WorkEntry",
    "add_months",
    "balance_delta",
    "billable_amount",
    "next_renewal_after",
    "renew",
    "round_minutes",
]
