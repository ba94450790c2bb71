"""
Withdrawal Manager.

Creates withdrawal requests against an affiliate's available balance in a
store and settles them. At most one PENDING request exists per
(affiliate, store): the check runs under a row lock on the StoreAffiliate
link and the partial unique index rejects whatever slips through.

Settling a request as PAID allocates its amount over the available
earnings, oldest availability first, and returns the payout instruction
handed to the payout collaborator.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.config import settings
from affiliate_engine.core.enum_utils import get_enum_value, to_enum
from affiliate_engine.core.exceptions import (
    DuplicatePendingRequest,
    InsufficientBalance,
    NotFound,
    ValidationError,
)
from affiliate_engine.core.timeutils import utcnow
from affiliate_engine.db_types import ZERO, to_money
from affiliate_engine.models.affiliate import Affiliate, StoreAffiliate
from affiliate_engine.models.earning import EarningStatus
from affiliate_engine.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from affiliate_engine.services.earning_ledger import EarningLedger, unsettled


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutInstruction:
    """What the payout collaborator needs to transfer the money."""
    withdrawal_request_id: uuid.UUID
    affiliate_id: uuid.UUID
    store_id: uuid.UUID
    amount: Decimal
    pix_key: str
    currency: str


@dataclass
class SettlementResult:
    request: WithdrawalRequest
    payout_instruction: Optional[PayoutInstruction] = None


class WithdrawalService:
    """Service for affiliate withdrawal requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = EarningLedger(db)

    async def _get_link(
        self,
        affiliate_id: uuid.UUID,
        store_id: uuid.UUID,
        for_update: bool = False,
    ) -> StoreAffiliate:
        query = select(StoreAffiliate).where(
            StoreAffiliate.affiliate_id == affiliate_id,
            StoreAffiliate.store_id == store_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        link = result.scalar_one_or_none()
        if not link:
            raise NotFound(
                "Affiliate is not linked to this store",
                {"affiliate_id": str(affiliate_id), "store_id": str(store_id)}
            )
        return link

    async def _get_pending(self, affiliate_id: uuid.UUID, store_id: uuid.UUID) -> Optional[WithdrawalRequest]:
        result = await self.db.execute(
            select(WithdrawalRequest).where(
                WithdrawalRequest.affiliate_id == affiliate_id,
                WithdrawalRequest.store_id == store_id,
                WithdrawalRequest.status == WithdrawalStatus.PENDING.value,
            )
        )
        return result.scalar_one_or_none()

    async def has_pending_request(self, affiliate_id: uuid.UUID, store_id: uuid.UUID) -> bool:
        return await self._get_pending(affiliate_id, store_id) is not None

    async def get_available_balance(
        self,
        affiliate_id: uuid.UUID,
        store_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Decimal:
        return await self.ledger.get_available_balance(affiliate_id, store_id, now)

    async def request_withdrawal(
        self,
        affiliate_id: uuid.UUID,
        store_id: uuid.UUID,
        amount=None,
        pix_key: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WithdrawalRequest:
        """
        Create a PENDING withdrawal request.

        `amount=None` requests the whole available balance. The payout key
        defaults to the one stored on the affiliate.
        """
        link = await self._get_link(affiliate_id, store_id, for_update=True)

        existing = await self._get_pending(affiliate_id, store_id)
        if existing:
            raise DuplicatePendingRequest(
                "A pending withdrawal request already exists for this store",
                {"withdrawal_request_id": str(existing.id)}
            )

        available = await self.ledger.get_available_balance(affiliate_id, store_id, now)

        if amount is None:
            if available <= ZERO:
                raise InsufficientBalance("No balance available for withdrawal", {"available": str(available)})
            requested = available
        else:
            try:
                requested = to_money(amount)
            except (InvalidOperation, TypeError, ValueError):
                raise ValidationError("Withdrawal amount must be a number", {"amount": str(amount)})
            if requested <= ZERO:
                raise ValidationError("Withdrawal amount must be positive", {"amount": str(requested)})

        payout_key = (pix_key or "").strip()
        if not payout_key:
            affiliate = await self.db.get(Affiliate, affiliate_id)
            payout_key = ((affiliate.pix_key if affiliate else None) or "").strip()
        if not payout_key:
            raise ValidationError("A PIX key is required to request a withdrawal")

        if requested > available:
            raise InsufficientBalance(
                f"Requested {requested} exceeds available balance {available}",
                {"requested": str(requested), "available": str(available)}
            )

        request = WithdrawalRequest(
            id=uuid.uuid4(),
            affiliate_id=affiliate_id,
            store_id=store_id,
            store_affiliate_id=link.id,
            amount=requested,
            pix_key=payout_key,
            notes=notes,
            status=WithdrawalStatus.PENDING.value,
            requested_at=now or utcnow(),
        )
        self.db.add(request)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Duplicate pending withdrawal for affiliate {affiliate_id} store {store_id}")
            raise DuplicatePendingRequest("A pending withdrawal request already exists for this store")

        await self.db.refresh(request)
        logger.info(f"Withdrawal requested: affiliate={affiliate_id} store={store_id} amount={requested}")
        return request

    async def settle(
        self,
        request_id: uuid.UUID,
        outcome,
        admin_notes: Optional[str] = None,
        payment_proof: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementResult:
        """Mark a PENDING request as PAID or REJECTED."""
        target = to_enum(outcome, WithdrawalStatus)
        if target not in (WithdrawalStatus.PAID, WithdrawalStatus.REJECTED):
            raise ValidationError(
                f"Invalid settlement outcome: {get_enum_value(outcome)}",
                {"outcome": get_enum_value(outcome)}
            )

        result = await self.db.execute(
            select(WithdrawalRequest)
            .where(WithdrawalRequest.id == request_id)
            .with_for_update()
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFound("Withdrawal request not found", {"withdrawal_request_id": str(request_id)})

        if request.status != WithdrawalStatus.PENDING.value:
            raise ValidationError(
                f"Withdrawal request is already {request.status}",
                {"status": request.status}
            )

        now = now or utcnow()
        request.processed_at = now
        if admin_notes is not None:
            request.admin_notes = admin_notes
        if payment_proof is not None:
            request.payment_proof = payment_proof

        if target == WithdrawalStatus.REJECTED:
            request.status = WithdrawalStatus.REJECTED.value
            await self.db.commit()
            await self.db.refresh(request)
            logger.info(f"Withdrawal {request_id} rejected")
            return SettlementResult(request=request)

        await self._allocate(request, now)

        request.status = WithdrawalStatus.PAID.value
        request.paid_at = now
        await self.db.commit()
        await self.db.refresh(request)

        instruction = PayoutInstruction(
            withdrawal_request_id=request.id,
            affiliate_id=request.affiliate_id,
            store_id=request.store_id,
            amount=to_money(request.amount),
            pix_key=request.pix_key,
            currency=settings.CURRENCY,
        )
        logger.info(
            f"Payout instruction: request={instruction.withdrawal_request_id} "
            f"affiliate={instruction.affiliate_id} amount={instruction.amount}"
        )
        return SettlementResult(request=request, payout_instruction=instruction)

    async def _allocate(self, request: WithdrawalRequest, now: datetime) -> None:
        """Settle the request amount over available earnings, oldest first."""
        earnings = await self.ledger.get_available_earnings(
            request.affiliate_id, request.store_id, now, for_update=True
        )
        amount = to_money(request.amount)
        available = to_money(sum((unsettled(e) for e in earnings), ZERO))
        if amount > available:
            await self.db.rollback()
            raise InsufficientBalance(
                f"Available balance {available} no longer covers withdrawal of {amount}",
                {"requested": str(amount), "available": str(available)}
            )

        remaining = amount
        for earning in earnings:
            if remaining <= ZERO:
                break
            share = min(unsettled(earning), remaining)
            earning.settled_amount = to_money(earning.settled_amount) + share
            earning.withdrawal_request_id = request.id
            remaining -= share
            if unsettled(earning) == ZERO:
                earning.status = EarningStatus.PAID.value
                earning.paid_at = now

    async def get_request(self, request_id: uuid.UUID) -> WithdrawalRequest:
        request = await self.db.get(WithdrawalRequest, request_id)
        if not request:
            raise NotFound("Withdrawal request not found", {"withdrawal_request_id": str(request_id)})
        return request

    async def list_requests(
        self,
        store_id: Optional[uuid.UUID] = None,
        affiliate_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[WithdrawalRequest], int]:
        query = select(WithdrawalRequest)
        if store_id:
            query = query.where(WithdrawalRequest.store_id == store_id)
        if affiliate_id:
            query = query.where(WithdrawalRequest.affiliate_id == affiliate_id)
        if status:
            query = query.where(WithdrawalRequest.status == status.upper())

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        query = query.order_by(WithdrawalRequest.requested_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_stats(
        self,
        store_id: Optional[uuid.UUID] = None,
        affiliate_id: Optional[uuid.UUID] = None,
    ) -> Dict:
        """Counts per status and pending/paid totals."""
        query = select(
            WithdrawalRequest.status,
            func.count(WithdrawalRequest.id),
            func.coalesce(func.sum(WithdrawalRequest.amount), 0),
        )
        if store_id:
            query = query.where(WithdrawalRequest.store_id == store_id)
        if affiliate_id:
            query = query.where(WithdrawalRequest.affiliate_id == affiliate_id)
        query = query.group_by(WithdrawalRequest.status)

        result = await self.db.execute(query)

        stats = {
            "pending_count": 0,
            "paid_count": 0,
            "rejected_count": 0,
            "pending_amount": ZERO,
            "paid_amount": ZERO,
        }
        for status, count, total in result.all():
            key = status.lower()
            stats[f"{key}_count"] = count
            if status in (WithdrawalStatus.PENDING.value, WithdrawalStatus.PAID.value):
                stats[f"{key}_amount"] = to_money(total)
        stats["total_count"] = stats["pending_count"] + stats["paid_count"] + stats["rejected_count"]
        return stats
