"""Background workers supporting the engagement engine."""

from .loyalty_settlement import LoyaltySettlementWorker

__all__ = ["LoyaltySettlementWorker"]
