"""
Affiliate Service

Handles affiliate administration:
- Affiliate registration and profile (soft delete only)
- Store invites and the StoreAffiliate link lifecycle
- Store maturity configuration
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.config import settings
from affiliate_engine.core.exceptions import NotFound, ValidationError
from affiliate_engine.models.affiliate import (
    Affiliate,
    AffiliateStatus,
    CommissionType,
    StoreAffiliate,
    StoreAffiliateStatus,
)
from affiliate_engine.models.store import Store
from affiliate_engine.services.rule_store import validate_commission


logger = logging.getLogger(__name__)

AFFILIATE_UPDATABLE_FIELDS = ("name", "email", "phone", "pix_key")
NULLABLE_FIELDS = ("phone", "pix_key")


class AffiliateService:
    """Service for affiliates, store links and store settings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Stores
    # ========================================================================

    async def create_store(self, name: str, maturity_days: Optional[int] = None) -> Store:
        if maturity_days is None:
            maturity_days = settings.DEFAULT_MATURITY_DAYS
        self._check_maturity_days(maturity_days)

        store = Store(id=uuid.uuid4(), name=name, affiliate_commission_maturity_days=maturity_days)
        self.db.add(store)
        await self.db.commit()
        await self.db.refresh(store)
        return store

    async def get_store(self, store_id: uuid.UUID) -> Store:
        store = await self.db.get(Store, store_id)
        if not store:
            raise NotFound("Store not found", {"store_id": str(store_id)})
        return store

    @staticmethod
    def _check_maturity_days(days: int) -> None:
        if days is None or int(days) < 0:
            raise ValidationError("Maturity days must be zero or greater", {"maturity_days": days})

    async def set_store_maturity_days(self, store_id: uuid.UUID, days: int) -> Store:
        """
        Change the store's maturity period.

        Only earnings delivered after the change use the new value; stamped
        earnings keep the days applied when they were delivered.
        """
        self._check_maturity_days(days)
        store = await self.get_store(store_id)

        previous = store.affiliate_commission_maturity_days
        store.affiliate_commission_maturity_days = int(days)
        await self.db.commit()
        await self.db.refresh(store)

        logger.info(f"Store {store_id} maturity days changed {previous} -> {days}")
        return store

    # ========================================================================
    # Affiliates
    # ========================================================================

    async def _get_by_email(self, email: str) -> Optional[Affiliate]:
        result = await self.db.execute(
            select(Affiliate).where(func.lower(Affiliate.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def register_affiliate(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        pix_key: Optional[str] = None,
    ) -> Affiliate:
        if await self._get_by_email(email):
            raise ValidationError("Email already registered", {"email": email})

        affiliate = Affiliate(
            id=uuid.uuid4(),
            name=name.strip(),
            email=email.strip().lower(),
            phone=phone,
            pix_key=pix_key,
            status=AffiliateStatus.ACTIVE.value,
        )
        self.db.add(affiliate)
        await self.db.commit()
        await self.db.refresh(affiliate)

        logger.info(f"Affiliate registered: {affiliate.email}")
        return affiliate

    async def get_affiliate(self, affiliate_id: uuid.UUID) -> Affiliate:
        affiliate = await self.db.get(Affiliate, affiliate_id)
        if not affiliate:
            raise NotFound("Affiliate not found", {"affiliate_id": str(affiliate_id)})
        return affiliate

    async def list_affiliates(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Affiliate], int]:
        query = select(Affiliate)
        if status:
            query = query.where(Affiliate.status == status.upper())
        if search:
            pattern = f"%{search}%"
            query = query.where(Affiliate.name.ilike(pattern) | Affiliate.email.ilike(pattern))

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        query = query.order_by(Affiliate.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def update_affiliate(self, affiliate_id: uuid.UUID, **changes) -> Affiliate:
        affiliate = await self.get_affiliate(affiliate_id)

        email = changes.get("email")
        if email and email.strip().lower() != affiliate.email:
            other = await self._get_by_email(email)
            if other and other.id != affiliate.id:
                raise ValidationError("Email already registered", {"email": email})
            changes["email"] = email.strip().lower()

        for field in AFFILIATE_UPDATABLE_FIELDS:
            if field not in changes:
                continue
            # name and email are required, None means "keep"
            if changes[field] is None and field not in NULLABLE_FIELDS:
                continue
            setattr(affiliate, field, changes[field])

        await self.db.commit()
        await self.db.refresh(affiliate)
        return affiliate

    async def deactivate_affiliate(self, affiliate_id: uuid.UUID) -> Affiliate:
        affiliate = await self.get_affiliate(affiliate_id)
        affiliate.status = AffiliateStatus.INACTIVE.value
        await self.db.commit()
        await self.db.refresh(affiliate)

        logger.info(f"Affiliate {affiliate_id} deactivated")
        return affiliate

    # ========================================================================
    # Store links
    # ========================================================================

    async def get_store_affiliate(self, store_affiliate_id: uuid.UUID) -> StoreAffiliate:
        link = await self.db.get(StoreAffiliate, store_affiliate_id)
        if not link:
            raise NotFound("Store affiliate not found", {"store_affiliate_id": str(store_affiliate_id)})
        return link

    async def list_store_affiliates(
        self,
        store_id: Optional[uuid.UUID] = None,
        affiliate_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
    ) -> List[StoreAffiliate]:
        query = select(StoreAffiliate)
        if store_id:
            query = query.where(StoreAffiliate.store_id == store_id)
        if affiliate_id:
            query = query.where(StoreAffiliate.affiliate_id == affiliate_id)
        if status:
            query = query.where(StoreAffiliate.status == status.upper())

        result = await self.db.execute(query.order_by(StoreAffiliate.invited_at.desc()))
        return list(result.scalars().all())

    async def invite_affiliate(
        self,
        store_id: uuid.UUID,
        affiliate_id: uuid.UUID,
        default_commission_type=CommissionType.PERCENTAGE,
        default_commission_value=0,
        commission_enabled: bool = True,
    ) -> StoreAffiliate:
        """
        Invite an affiliate to a store.

        Idempotent on (store, affiliate): an existing link is returned, and a
        previously rejected one goes back to INVITED.
        """
        await self.get_store(store_id)
        affiliate = await self.get_affiliate(affiliate_id)
        if affiliate.status != AffiliateStatus.ACTIVE.value:
            raise ValidationError("Affiliate is inactive", {"affiliate_id": str(affiliate_id)})

        type_value, value = validate_commission(default_commission_type, default_commission_value)

        result = await self.db.execute(
            select(StoreAffiliate).where(
                StoreAffiliate.store_id == store_id,
                StoreAffiliate.affiliate_id == affiliate_id,
            )
        )
        link = result.scalar_one_or_none()

        if link:
            if link.status == StoreAffiliateStatus.REJECTED.value:
                link.status = StoreAffiliateStatus.INVITED.value
                link.invited_at = datetime.now(timezone.utc)
                link.accepted_at = None
                await self.db.commit()
                await self.db.refresh(link)
                logger.info(f"Affiliate {affiliate_id} re-invited to store {store_id}")
            return link

        link = StoreAffiliate(
            id=uuid.uuid4(),
            store_id=store_id,
            affiliate_id=affiliate_id,
            status=StoreAffiliateStatus.INVITED.value,
            default_commission_type=type_value,
            default_commission_value=value,
            commission_enabled=commission_enabled,
        )
        self.db.add(link)
        await self.db.commit()
        await self.db.refresh(link)

        logger.info(f"Affiliate {affiliate_id} invited to store {store_id}")
        return link

    async def accept_invite(self, store_affiliate_id: uuid.UUID) -> StoreAffiliate:
        link = await self.get_store_affiliate(store_affiliate_id)
        if link.status == StoreAffiliateStatus.ACTIVE.value:
            return link
        if link.status != StoreAffiliateStatus.INVITED.value:
            raise ValidationError(f"Cannot accept invite in status {link.status}", {"status": link.status})

        link.status = StoreAffiliateStatus.ACTIVE.value
        link.accepted_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(link)

        logger.info(f"Store affiliate {store_affiliate_id} accepted")
        return link

    async def reject_invite(self, store_affiliate_id: uuid.UUID) -> StoreAffiliate:
        """Decline a pending invite or revoke an active link."""
        link = await self.get_store_affiliate(store_affiliate_id)
        if link.status == StoreAffiliateStatus.REJECTED.value:
            return link

        link.status = StoreAffiliateStatus.REJECTED.value
        await self.db.commit()
        await self.db.refresh(link)

        logger.info(f"Store affiliate {store_affiliate_id} rejected")
        return link
