"""
Customer service (tenant database).

Raises TenantNotFound for unknown client codes; everything else is
reported through return values.
"""
import structlog
from sqlalchemy import or_, select

from app.models.base import utcnow
from app.models.customer import Customer
from app.services.result import ErrorKind, ServiceResult
from app.services.tenant_resolver import TenantResolver
from app.services.webhook_dispatcher import WebhookDispatcher, trigger_safely

logger = structlog.get_logger()

UPDATABLE_FIELDS = (
    "customer_name",
    "email",
    "mobile_number",
    "alternate_phone",
    "address",
    "city",
    "state",
    "pin_code",
    "country",
    "customer_type",
    "company_name",
    "gst_number",
    "notes",
    "is_active",
)


def customer_event_data(customer: Customer) -> dict:
    return {
        "customerId": customer.id,
        "customerName": customer.customer_name,
        "email": customer.email,
        "customerType": customer.customer_type,
        "isActive": customer.is_active,
    }


class CustomerService:
    """Service for managing customers of a tenant."""

    def __init__(self, resolver: TenantResolver, dispatcher: WebhookDispatcher | None = None):
        self.resolver = resolver
        self.dispatcher = dispatcher

    @staticmethod
    async def _load(db, customer_id: int) -> Customer | None:
        result = await db.execute(select(Customer).where(Customer.id == customer_id))
        return result.scalar_one_or_none()

    async def list_customers(self, client_code: str) -> list[Customer]:
        """Get active customers ordered by name."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = (
                select(Customer)
                .where(Customer.is_active.is_(True))
                .order_by(Customer.customer_name)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def get_customer(self, customer_id: int, client_code: str) -> Customer | None:
        """Get active customer by ID."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = select(Customer).where(
                Customer.id == customer_id,
                Customer.is_active.is_(True),
            )
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def get_customer_by_email(self, email: str, client_code: str) -> Customer | None:
        """Get active customer by email."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = select(Customer).where(
                Customer.email == email,
                Customer.is_active.is_(True),
            )
            result = await db.execute(stmt)
            return result.scalars().first()

    async def search_customers(self, term: str, client_code: str) -> list[Customer]:
        """Active customers whose name, email or mobile contains term."""
        pattern = f"%{term}%"
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = (
                select(Customer)
                .where(
                    Customer.is_active.is_(True),
                    or_(
                        Customer.customer_name.ilike(pattern),
                        Customer.email.ilike(pattern),
                        Customer.mobile_number.ilike(pattern),
                    ),
                )
                .order_by(Customer.customer_name)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def create_customer(self, client_code: str, **fields) -> ServiceResult[Customer]:
        """
        Create a customer.

        Returns:
            ServiceResult with the Customer, or CONFLICT when the email
            is already used by another customer of the tenant
        """
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = select(Customer.id).where(Customer.email == fields["email"])
            if (await db.execute(stmt)).first() is not None:
                return ServiceResult.failure(
                    ErrorKind.CONFLICT,
                    f"Customer with email {fields['email']} already exists"
                )

            customer = Customer(**fields, is_active=True, created_on=utcnow())
            db.add(customer)
            await db.commit()
            await db.refresh(customer)

        logger.info("customer_created", client_code=client_code, customer_id=customer.id)
        await trigger_safely(self.dispatcher, "customer.created", customer_event_data(customer), client_code)
        return ServiceResult.success(customer)

    async def update_customer(self, customer_id: int, client_code: str, **changes) -> ServiceResult[Customer]:
        """
        Apply a partial update; None values are ignored.

        Returns:
            ServiceResult with the Customer, NOT_FOUND, or CONFLICT when the
            new email is taken
        """
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            customer = await self._load(db, customer_id)
            if customer is None:
                return ServiceResult.failure(ErrorKind.NOT_FOUND, f"Customer with ID {customer_id} not found")

            new_email = changes.get("email")
            if new_email and new_email != customer.email:
                stmt = select(Customer.id).where(Customer.email == new_email, Customer.id != customer_id)
                if (await db.execute(stmt)).first() is not None:
                    return ServiceResult.failure(
                        ErrorKind.CONFLICT,
                        f"Customer with email {new_email} already exists"
                    )

            for name in UPDATABLE_FIELDS:
                value = changes.get(name)
                if value is not None:
                    setattr(customer, name, value)
            customer.updated_on = utcnow()

            await db.commit()
            await db.refresh(customer)

        logger.info("customer_updated", client_code=client_code, customer_id=customer_id)
        await trigger_safely(self.dispatcher, "customer.updated", customer_event_data(customer), client_code)
        return ServiceResult.success(customer)

    async def delete_customer(self, customer_id: int, client_code: str) -> bool:
        """Soft-delete a customer. Returns False if it does not exist."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            customer = await self._load(db, customer_id)
            if customer is None:
                return False

            customer.is_active = False
            customer.updated_on = utcnow()
            await db.commit()

        logger.info("customer_deleted", client_code=client_code, customer_id=customer_id)
        await trigger_safely(self.dispatcher, "customer.deleted", customer_event_data(customer), client_code)
        return True
