"""Cost estimation and the credit ledger."""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Literal, Optional, Protocol

from pydantic import BaseModel

from .catalog import ModelCatalog
from .constants import CREATOR_COMMISSION_RATE
from .contracts import GenericHttpStep, StepDefinition, Workflow
from .errors import InsufficientBalanceError

logger = logging.getLogger(__name__)


def estimate_cost(steps: Iterable[StepDefinition], catalog: ModelCatalog) -> int:
    """Sum model prices plus the declared price of generic HTTP steps."""
    total = 0
    for step in steps:
        if step.model_id:
            total += catalog.cost_of(step.model_id)
        if isinstance(step, GenericHttpStep):
            total += step.price
    return total


def charged_cost(workflow: Workflow, catalog: ModelCatalog) -> int:
    """A workflow never costs less than its model usage."""
    return max(workflow.declared_price, estimate_cost(workflow.steps, catalog))


class Receipt(BaseModel):
    cost: int
    creator_earnings: int
    from_purchased: int
    from_earned: int


class Transaction(BaseModel):
    user_id: str
    amount: int
    kind: Literal["purchase", "workflow_use", "creator_earning"]
    wallet: Literal["purchased", "earned", "both"]
    reason: str = ""


class Wallet(BaseModel):
    purchased: int = 0
    earned: int = 0

    @property
    def total(self) -> int:
        return self.purchased + self.earned


class BalanceLedger(Protocol):
    """Protocol for balance and credit accounting backends."""

    async def balance(self, user_id: str) -> int:
        """Return the spendable balance of ``user_id``."""

    async def has_balance(self, user_id: str, cost: int) -> bool:
        """``True`` when ``user_id`` can afford ``cost``."""

    async def deduct(
        self, user_id: str, workflow_id: str, cost: int, creator_id: Optional[str] = None
    ) -> Receipt:
        """Charge a completed run and credit the workflow's creator."""


class InMemoryLedger(BalanceLedger):
    """Two-wallet ledger: purchased credits are spent before earned ones."""

    def __init__(self) -> None:
        self._wallets: Dict[str, Wallet] = {}
        self.transactions: List[Transaction] = []

    def wallet(self, user_id: str) -> Wallet:
        return self._wallets.setdefault(user_id, Wallet())

    def credit(self, user_id: str, amount: int, reason: str = "") -> None:
        """Add purchased credits (top-ups, subscriptions)."""
        self.wallet(user_id).purchased += amount
        self.transactions.append(
            Transaction(user_id=user_id, amount=amount, kind="purchase", wallet="purchased", reason=reason)
        )

    async def balance(self, user_id: str) -> int:
        return self.wallet(user_id).total

    async def has_balance(self, user_id: str, cost: int) -> bool:
        return self.wallet(user_id).total >= cost

    async def deduct(
        self, user_id: str, workflow_id: str, cost: int, creator_id: Optional[str] = None
    ) -> Receipt:
        wallet = self.wallet(user_id)
        if wallet.total < cost:
            raise InsufficientBalanceError(cost, wallet.total)

        from_purchased = min(wallet.purchased, cost)
        from_earned = cost - from_purchased
        creator_earnings = math.floor(cost * CREATOR_COMMISSION_RATE)

        wallet.purchased -= from_purchased
        wallet.earned -= from_earned
        self.transactions.append(
            Transaction(
                user_id=user_id,
                amount=-cost,
                kind="workflow_use",
                wallet="both" if from_earned > 0 else "purchased",
                reason=f"Used workflow {workflow_id}",
            )
        )

        if creator_id:
            self.wallet(creator_id).earned += creator_earnings
            self.transactions.append(
                Transaction(
                    user_id=creator_id,
                    amount=creator_earnings,
                    kind="creator_earning",
                    wallet="earned",
                    reason=f"Earned from workflow {workflow_id}",
                )
            )

        logger.info(f"Charged {user_id} {cost} credits for workflow {workflow_id}")
        return Receipt(
            cost=cost,
            creator_earnings=creator_earnings,
            from_purchased=from_purchased,
            from_earned=from_earned,
        )
