"""
Credit Ledger

Usage accounting for generation calls. Every billable call is debited
after it succeeds: credits = ceil(tokens / tokens_per_credit). The
orchestrator logs debit failures and never lets them affect a workflow.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from medbrain.config import settings
from medbrain.models.records import utcnow
from medbrain.utils import get_logger, BillingError

logger = get_logger(__name__)


def credits_from_tokens(tokens: int, tokens_per_credit: Optional[int] = None) -> int:
    per_credit = tokens_per_credit or settings.tokens_per_credit
    if tokens <= 0:
        return 0
    return math.ceil(tokens / per_credit)


@dataclass
class CreditTransaction:
    user_id: str
    amount: int                     # negative for debits
    balance_after: int
    tokens: int
    description: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    type: str = "debit"
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "type": self.type,
            "amount": self.amount,
            "balanceAfter": self.balance_after,
            "tokens": self.tokens,
            "description": self.description,
            "metadata": self.metadata,
            "createdAt": self.created_at.isoformat(),
        }


class CreditLedger(Protocol):
    async def debit(self, user_id: str, token_count: int, metadata: Dict[str, Any]) -> CreditTransaction: ...


class InMemoryCreditLedger:
    """Per-user balances and an append-only transaction list."""

    def __init__(self, tokens_per_credit: Optional[int] = None):
        self.tokens_per_credit = tokens_per_credit or settings.tokens_per_credit
        self._balances: Dict[str, int] = {}
        self.transactions: List[CreditTransaction] = []

    def grant(self, user_id: str, credits: int) -> int:
        self._balances[user_id] = self._balances.get(user_id, 0) + credits
        return self._balances[user_id]

    def balance(self, user_id: str) -> Optional[int]:
        return self._balances.get(user_id)

    async def debit(self, user_id: str, token_count: int, metadata: Dict[str, Any]) -> CreditTransaction:
        """
        Debit credits for `token_count` tokens.

        Raises:
            BillingError: account missing or balance too low.
        """
        credits = credits_from_tokens(token_count, self.tokens_per_credit)
        current = self._balances.get(user_id)
        if current is None:
            raise BillingError("User credits account not initialized", {"userId": user_id})
        if current < credits:
            raise BillingError(
                "Insufficient credits",
                {"userId": user_id, "balance": current, "required": credits},
            )

        self._balances[user_id] = current - credits
        operation = metadata.get("operation", "generation")
        transaction = CreditTransaction(
            user_id=user_id,
            amount=-credits,
            balance_after=self._balances[user_id],
            tokens=token_count,
            description=f"{operation} - {token_count} tokens",
            metadata=dict(metadata),
        )
        self.transactions.append(transaction)
        logger.info(f"Billing: debited {credits} credit(s) from {user_id} for {operation}")
        return transaction
