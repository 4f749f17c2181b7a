"""
Quotation service (tenant database).

Amounts are computed here, never taken from the caller:
    metal  = net weight x gold rate
    making = per gram / percentage of metal / fixed
    item   = metal + making + stone
Totals multiply each item by its quantity, subtract the old metal amount
and add GST when applied.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import select

from app.models.base import utcnow
from app.models.customer import Customer
from app.models.quotation import MakingType, Quotation, QuotationItem, QuotationStatus
from app.services.result import ErrorKind, ServiceResult
from app.services.tenant_resolver import TenantResolver
from app.services.webhook_dispatcher import WebhookDispatcher, format_timestamp, trigger_safely

logger = structlog.get_logger()

CENT = Decimal("0.01")
NUMBER_PREFIX = "QTN"
DEFAULT_GST_PERCENTAGE = Decimal("3.00")


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class ItemInput:
    """One requested line; amounts are derived, not supplied."""
    product_id: int
    item_code: str
    gross_weight: Decimal
    net_weight: Decimal
    gold_rate: Decimal = Decimal("0")
    making: Decimal = Decimal("0")
    making_type: str = MakingType.FIXED.value
    stone_weight: Decimal = Decimal("0")
    stone_amount: Decimal = Decimal("0")
    quantity: int = 1
    rfid_code: str | None = None
    design_name: str | None = None
    purity: str | None = None
    remarks: str | None = None


def calculate_item_amounts(
    net_weight,
    gold_rate,
    making,
    making_type: str | None,
    stone_amount
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Compute (making_amount, metal_amount, item_amount) of one item.

    Unknown making types are treated as a fixed charge.
    """
    net_weight = _decimal(net_weight)
    making = _decimal(making)

    metal_amount = net_weight * _decimal(gold_rate)
    kind = (making_type or "").lower()
    if kind == MakingType.PER_GRAM.value.lower():
        making_amount = net_weight * making
    elif kind == MakingType.PERCENTAGE.value.lower():
        making_amount = metal_amount * making / 100
    else:
        making_amount = making

    item_amount = metal_amount + making_amount + _decimal(stone_amount)
    return _money(making_amount), _money(metal_amount), _money(item_amount)


def build_items(inputs: list[ItemInput]) -> list[QuotationItem]:
    items = []
    for line in inputs:
        making_amount, metal_amount, item_amount = calculate_item_amounts(
            line.net_weight,
            line.gold_rate,
            line.making,
            line.making_type,
            line.stone_amount,
        )
        items.append(QuotationItem(
            product_id=line.product_id,
            item_code=line.item_code,
            rfid_code=line.rfid_code,
            design_name=line.design_name or line.item_code,
            purity=line.purity or "",
            gross_weight=_decimal(line.gross_weight),
            stone_weight=_decimal(line.stone_weight),
            net_weight=_decimal(line.net_weight),
            gold_rate=_decimal(line.gold_rate),
            making=_decimal(line.making),
            making_type=line.making_type or MakingType.FIXED.value,
            stone_amount=_decimal(line.stone_amount),
            making_amount=making_amount,
            metal_amount=metal_amount,
            item_amount=item_amount,
            quantity=line.quantity,
            remarks=line.remarks,
            created_on=utcnow(),
        ))
    return items


def apply_totals(quotation: Quotation, items: list[QuotationItem]) -> None:
    """Recompute quantity, weight and amount totals of a quotation."""
    quotation.quantity = sum(item.quantity for item in items)
    quotation.total_gross_weight = sum(
        (_decimal(item.gross_weight) * item.quantity for item in items),
        Decimal("0"),
    )
    item_total = sum(
        (_decimal(item.item_amount) * item.quantity for item in items),
        Decimal("0"),
    )
    quotation.sub_total_amount = _money(item_total - _decimal(quotation.old_metal_amount))
    apply_gst(quotation)


def apply_gst(quotation: Quotation) -> None:
    if quotation.is_gst_applied:
        gst = quotation.sub_total_amount * _decimal(quotation.gst_percentage) / 100
        quotation.gst_amount = _money(gst)
    else:
        quotation.gst_amount = Decimal("0.00")
    quotation.total_amount = _money(quotation.sub_total_amount + quotation.gst_amount)


def quotation_event_data(quotation: Quotation, customer_name: str | None = None) -> dict:
    return {
        "quotationId": quotation.id,
        "quotationNumber": quotation.quotation_number,
        "customerId": quotation.customer_id,
        "customerName": customer_name,
        "totalAmount": float(quotation.total_amount),
        "quantity": quotation.quantity,
        "status": quotation.status,
        "createdAt": format_timestamp(quotation.created_on),
    }


class QuotationService:
    """Service for quotations of a tenant."""

    def __init__(self, resolver: TenantResolver, dispatcher: WebhookDispatcher | None = None):
        self.resolver = resolver
        self.dispatcher = dispatcher

    @staticmethod
    async def _load(db, quotation_id: int, active_only: bool = False, fresh: bool = False) -> Quotation | None:
        stmt = select(Quotation).where(Quotation.id == quotation_id)
        if active_only:
            stmt = stmt.where(Quotation.is_active.is_(True))
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _next_number(db, now: datetime) -> str:
        """Next QTN-<year>-<sequence> number of the tenant."""
        prefix = f"{NUMBER_PREFIX}-{now.year}-"
        stmt = (
            select(Quotation.quotation_number)
            .where(Quotation.quotation_number.startswith(prefix))
            .order_by(Quotation.quotation_number.desc())
            .limit(1)
        )
        last = (await db.execute(stmt)).scalar_one_or_none()

        sequence = 1
        if last:
            suffix = last[len(prefix):]
            if suffix.isdigit():
                sequence = int(suffix) + 1
        return f"{prefix}{sequence:06d}"

    async def list_quotations(self, client_code: str) -> list[Quotation]:
        """Active quotations, newest first."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = (
                select(Quotation)
                .where(Quotation.is_active.is_(True))
                .order_by(Quotation.quotation_date.desc(), Quotation.id.desc())
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def list_quotations_by_customer(self, customer_id: int, client_code: str) -> list[Quotation]:
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = (
                select(Quotation)
                .where(
                    Quotation.customer_id == customer_id,
                    Quotation.is_active.is_(True),
                )
                .order_by(Quotation.quotation_date.desc(), Quotation.id.desc())
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def get_quotation(self, quotation_id: int, client_code: str) -> Quotation | None:
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            return await self._load(db, quotation_id, active_only=True)

    async def create_quotation(
        self,
        client_code: str,
        customer_id: int,
        items: list[ItemInput],
        old_metal_weight=None,
        old_metal_rate=None,
        old_metal_amount=None,
        payment_mode: str | None = None,
        is_gst_applied: bool = False,
        gst_percentage=DEFAULT_GST_PERCENTAGE,
        valid_until: datetime | None = None,
        remarks: str | None = None,
    ) -> ServiceResult[Quotation]:
        """
        Create a Draft quotation with computed totals.

        Returns:
            ServiceResult with the Quotation, NOT_FOUND when the customer is
            missing or inactive, INVALID when there are no items
        """
        if not items:
            return ServiceResult.failure(ErrorKind.INVALID, "Quotation must have at least one item")

        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            stmt = select(Customer).where(
                Customer.id == customer_id,
                Customer.is_active.is_(True),
            )
            customer = (await db.execute(stmt)).scalar_one_or_none()
            if customer is None:
                return ServiceResult.failure(ErrorKind.NOT_FOUND, f"Customer with ID {customer_id} not found")

            now = utcnow()
            quotation = Quotation(
                quotation_number=await self._next_number(db, now),
                customer_id=customer.id,
                old_metal_weight=old_metal_weight,
                old_metal_rate=old_metal_rate,
                old_metal_amount=old_metal_amount,
                payment_mode=payment_mode,
                is_gst_applied=is_gst_applied,
                gst_percentage=_decimal(gst_percentage),
                valid_until=valid_until,
                remarks=remarks,
                status=QuotationStatus.DRAFT.value,
                quotation_date=now,
                created_on=now,
                is_active=True,
            )
            quotation_items = build_items(items)
            quotation.items = quotation_items
            apply_totals(quotation, quotation_items)

            db.add(quotation)
            await db.commit()
            quotation = await self._load(db, quotation.id, fresh=True)

        logger.info(
            "quotation_created",
            client_code=client_code,
            quotation_number=quotation.quotation_number,
            customer_id=customer_id,
        )
        await trigger_safely(
            self.dispatcher,
            "quotation.created",
            quotation_event_data(quotation, customer.customer_name),
            client_code,
        )
        return ServiceResult.success(quotation)

    async def update_quotation(
        self,
        quotation_id: int,
        client_code: str,
        items: list[ItemInput] | None = None,
        **changes
    ) -> ServiceResult[Quotation]:
        """
        Apply a partial update.

        Supplied items replace the existing ones and totals are recomputed;
        GST and total are always recomputed. Accepted keyword changes:
        customer_id, status, remarks, valid_until, payment_mode,
        is_gst_applied, gst_percentage, old_metal_weight, old_metal_rate,
        old_metal_amount. None values are ignored.
        """
        status = changes.get("status")
        if status is not None and status not in {s.value for s in QuotationStatus}:
            return ServiceResult.failure(ErrorKind.INVALID, f"Unknown quotation status {status!r}")

        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            quotation = await self._load(db, quotation_id)
            if quotation is None:
                return ServiceResult.failure(ErrorKind.NOT_FOUND, f"Quotation with ID {quotation_id} not found")

            customer_id = changes.get("customer_id")
            if customer_id is not None:
                stmt = select(Customer.id).where(
                    Customer.id == customer_id,
                    Customer.is_active.is_(True),
                )
                if (await db.execute(stmt)).first() is None:
                    return ServiceResult.failure(ErrorKind.NOT_FOUND, f"Customer with ID {customer_id} not found")
                quotation.customer_id = customer_id

            for name in ("old_metal_weight", "old_metal_rate", "old_metal_amount", "gst_percentage"):
                if changes.get(name) is not None:
                    setattr(quotation, name, _decimal(changes[name]))
            for name in ("payment_mode", "status", "remarks", "valid_until", "is_gst_applied"):
                if changes.get(name) is not None:
                    setattr(quotation, name, changes[name])

            if items:
                quotation.items = build_items(items)
                apply_totals(quotation, quotation.items)
            else:
                apply_gst(quotation)
            quotation.updated_on = utcnow()

            await db.commit()
            quotation = await self._load(db, quotation_id, fresh=True)
            customer_name = quotation.customer.customer_name if quotation.customer else None

        logger.info("quotation_updated", client_code=client_code, quotation_number=quotation.quotation_number)
        await trigger_safely(
            self.dispatcher,
            "quotation.updated",
            quotation_event_data(quotation, customer_name),
            client_code,
        )
        return ServiceResult.success(quotation)

    async def delete_quotation(self, quotation_id: int, client_code: str) -> bool:
        """Soft-delete a quotation. Returns False if it does not exist."""
        tenant = await self.resolver.resolve(client_code)
        async with tenant as db:
            quotation = await self._load(db, quotation_id)
            if quotation is None:
                return False

            quotation.is_active = False
            quotation.updated_on = utcnow()
            await db.commit()
            customer_name = quotation.customer.customer_name if quotation.customer else None

        logger.info("quotation_deleted", client_code=client_code, quotation_number=quotation.quotation_number)
        await trigger_safely(
            self.dispatcher,
            "quotation.deleted",
            quotation_event_data(quotation, customer_name),
            client_code,
        )
        return True
