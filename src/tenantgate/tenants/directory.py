"""Read-only tenant lookups.

Every call goes to the catalog; tenant configuration can change between
requests, so nothing is cached here.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.tenants.models import TenantModel


class TenantDirectory:
    """Tenant catalog queries."""

    async def get_by_identifier(
        self, session: AsyncSession, identifier: str
    ) -> TenantModel | None:
        result = await session.execute(
            select(TenantModel).where(TenantModel.identifier == identifier)
        )
        return result.scalar_one_or_none()

    async def get_by_id(
        self, session: AsyncSession, tenant_id: str
    ) -> TenantModel | None:
        return await session.get(TenantModel, tenant_id)

    async def list_tenants(
        self, session: AsyncSession, page: int = 1, page_size: int | None = None
    ) -> list[TenantModel]:
        stmt = select(TenantModel).order_by(TenantModel.identifier)
        if page_size is not None:
            stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def identifier_exists(self, session: AsyncSession, identifier: str) -> bool:
        result = await session.execute(
            select(func.count()).select_from(TenantModel).where(
                TenantModel.identifier == identifier
            )
        )
        return result.scalar_one() > 0

    async def name_exists(self, session: AsyncSession, name: str) -> bool:
        result = await session.execute(
            select(func.count()).select_from(TenantModel).where(TenantModel.name == name)
        )
        return result.scalar_one() > 0
