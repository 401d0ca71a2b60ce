"""Catalog lookups for treatment duration and machine requirements."""

from uuid import UUID

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager, clinic_cache_key
from app.models.products_services import products_services

logger = structlog.get_logger(__name__)


class TreatmentInfo(BaseModel):
    """Catalog attributes the scheduler reads."""

    id: UUID
    title: str
    item_type: str
    duration: int | None = None
    is_overlappable: bool = False


class CatalogService:
    """Read-only access to the products/services catalog."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        clinic_id: str | None = None,
    ):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache_manager
        self.clinic_id = clinic_id

    def _cache_key(self, treatment_id: UUID) -> str | None:
        if self.cache is None or self.clinic_id is None:
            return None
        return clinic_cache_key(self.clinic_id, "catalog", treatment_id)

    async def get_treatment(self, treatment_id: UUID) -> TreatmentInfo | None:
        """
        Get a catalog entry by ID.

        Args:
            treatment_id: Catalog entry ID

        Returns:
            Treatment info or None if it does not exist
        """
        cache_key = self._cache_key(treatment_id)
        if cache_key:
            cached = self.cache.get_json(cache_key)
            if cached:
                return TreatmentInfo.model_validate(cached)

        stmt = select(
            products_services.c.id,
            products_services.c.title,
            products_services.c.item_type,
            products_services.c.duration,
            products_services.c.is_overlappable,
        ).where(products_services.c.id == treatment_id)
        result = await self.db.execute(stmt)
        row = result.fetchone()

        if not row:
            return None

        treatment = TreatmentInfo.model_validate(dict(row._mapping))
        if cache_key:
            self.cache.set_json(
                cache_key, treatment.model_dump(mode="json"), ttl=settings.catalog_cache_ttl
            )
        return treatment

    async def require_treatment(self, treatment_id: UUID) -> TreatmentInfo:
        """
        Get a catalog entry or fail.

        Raises:
            NotFoundException: If the treatment does not exist
        """
        treatment = await self.get_treatment(treatment_id)
        if treatment is None:
            logger.info("treatment_not_found", treatment_id=str(treatment_id))
            raise NotFoundException("Treatment not found")
        return treatment
