"""
Dashboard summary.
"""
from decimal import Decimal

from app.services.customer_service import CustomerService
from app.services.dashboard_service import DashboardService
from app.services.quotation_service import ItemInput, QuotationService


def _item() -> ItemInput:
    return ItemInput(
        product_id=1,
        item_code="RNG-001",
        gross_weight=Decimal("5"),
        net_weight=Decimal("5"),
        gold_rate=Decimal("1000"),
    )


async def test_summary_counts_customers_and_quotations(resolver, tenants):
    customers = CustomerService(resolver)
    quotations = QuotationService(resolver)

    asha = (await customers.create_customer("ACME", customer_name="Asha", email="a@acme.test")).value
    await customers.create_customer("ACME", customer_name="Gold Co", email="g@acme.test", customer_type="Business")
    gone = (await customers.create_customer("ACME", customer_name="Gone", email="x@acme.test")).value
    await customers.delete_customer(gone.id, "ACME")
    await customers.create_customer("BETA", customer_name="Other", email="o@beta.test")

    first = (await quotations.create_quotation("ACME", customer_id=asha.id, items=[_item()])).value
    await quotations.create_quotation("ACME", customer_id=asha.id, items=[_item()])
    await quotations.update_quotation(first.id, "ACME", status="Accepted")

    summary = await DashboardService(resolver).get_summary("ACME")

    assert summary.total_customers == 2
    assert summary.new_customers_this_month == 2
    assert summary.business_customers == 1
    assert summary.individual_customers == 1
    assert summary.total_quotations == 2
    assert summary.quotations_by_status["Draft"] == 1
    assert summary.quotations_by_status["Accepted"] == 1
    assert summary.quotations_by_status["Rejected"] == 0
    assert summary.total_quotation_value == Decimal("10000.00")


async def test_summary_of_empty_tenant(resolver, tenants):
    summary = await DashboardService(resolver).get_summary("BETA")

    assert summary.total_customers == 0
    assert summary.total_quotations == 0
    assert summary.total_quotation_value == Decimal("0.00")
