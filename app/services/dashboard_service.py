"""
Dashboard summary (tenant database). Read-only.
"""
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select

from app.models.base import utcnow
from app.models.customer import Customer
from app.models.quotation import Quotation, QuotationStatus
from app.services.tenant_resolver import TenantResolver

BUSINESS_CUSTOMER_TYPE = "Business"


@dataclass
class DashboardSummary:
    total_customers: int = 0
    new_customers_this_month: int = 0
    business_customers: int = 0
    individual_customers: int = 0
    total_quotations: int = 0
    quotations_by_status: dict[str, int] = field(default_factory=dict)
    total_quotation_value: Decimal = Decimal("0")


class DashboardService:
    def __init__(self, resolver: TenantResolver):
        self.resolver = resolver

    async def get_summary(self, client_code: str) -> DashboardSummary:
        """
        Customer and quotation figures of a tenant.

        Only active rows are counted. Customers without the Business type
        count as individuals.
        """
        now = utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        summary = DashboardSummary()

        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = select(Customer.customer_type, Customer.created_on).where(Customer.is_active.is_(True))
            customers = (await db.execute(stmt)).all()

            summary.total_customers = len(customers)
            for customer_type, created_on in customers:
                if customer_type == BUSINESS_CUSTOMER_TYPE:
                    summary.business_customers += 1
                else:
                    summary.individual_customers += 1
                if created_on >= month_start:
                    summary.new_customers_this_month += 1

            stmt = (
                select(
                    Quotation.status,
                    func.count(Quotation.id),
                    func.coalesce(func.sum(Quotation.total_amount), 0),
                )
                .where(Quotation.is_active.is_(True))
                .group_by(Quotation.status)
            )
            rows = (await db.execute(stmt)).all()

        summary.quotations_by_status = {status.value: 0 for status in QuotationStatus}
        total_value = Decimal("0")
        for status, count, value in rows:
            summary.quotations_by_status[status] = count
            summary.total_quotations += count
            total_value += Decimal(str(value))
        summary.total_quotation_value = total_value.quantize(Decimal("0.01"))
        return summary
