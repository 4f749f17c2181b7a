"""
Customer service and its webhook events.
"""
from app.services.customer_service import CustomerService
from app.services.result import ErrorKind


async def test_create_customer_triggers_webhook(resolver, tenants, recording_dispatcher):
    service = CustomerService(resolver, recording_dispatcher)

    result = await service.create_customer(
        "ACME",
        customer_name="Asha Rao",
        email="asha@acme.test",
        customer_type="Individual",
    )

    assert result.ok
    customer = result.value
    assert customer.id is not None
    assert customer.is_active is True
    assert recording_dispatcher.calls == [
        (
            "customer.created",
            {
                "customerId": customer.id,
                "customerName": "Asha Rao",
                "email": "asha@acme.test",
                "customerType": "Individual",
                "isActive": True,
            },
            "ACME",
        )
    ]


async def test_duplicate_email_is_a_conflict(resolver, tenants, recording_dispatcher):
    service = CustomerService(resolver, recording_dispatcher)
    await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")

    duplicate = await service.create_customer("ACME", customer_name="Other", email="asha@acme.test")
    other_tenant = await service.create_customer("BETA", customer_name="Asha", email="asha@acme.test")

    assert duplicate.error == ErrorKind.CONFLICT
    assert other_tenant.ok
    assert recording_dispatcher.event_types() == ["customer.created", "customer.created"]


async def test_update_customer(resolver, tenants, recording_dispatcher):
    service = CustomerService(resolver, recording_dispatcher)
    created = (await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")).value

    result = await service.update_customer(created.id, "ACME", city="Pune", customer_name=None)

    assert result.ok
    assert result.value.city == "Pune"
    assert result.value.customer_name == "Asha"
    assert result.value.updated_on is not None
    assert recording_dispatcher.event_types()[-1] == "customer.updated"


async def test_update_missing_customer_is_not_found(resolver, tenants, recording_dispatcher):
    service = CustomerService(resolver, recording_dispatcher)
    result = await service.update_customer(999, "ACME", city="Pune")

    assert result.error == ErrorKind.NOT_FOUND
    assert recording_dispatcher.calls == []


async def test_update_to_taken_email_is_a_conflict(resolver, tenants):
    service = CustomerService(resolver)
    await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")
    second = (await service.create_customer("ACME", customer_name="Ravi", email="ravi@acme.test")).value

    result = await service.update_customer(second.id, "ACME", email="asha@acme.test")
    assert result.error == ErrorKind.CONFLICT


async def test_customer_of_another_tenant_cannot_be_updated(resolver, tenants):
    service = CustomerService(resolver)
    created = (await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")).value

    # BETA has its own database; the id does not exist there
    result = await service.update_customer(created.id, "BETA", city="Pune")
    assert result.error == ErrorKind.NOT_FOUND
    assert await service.delete_customer(created.id, "BETA") is False


async def test_delete_is_soft(resolver, tenants, recording_dispatcher):
    service = CustomerService(resolver, recording_dispatcher)
    created = (await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")).value

    assert await service.delete_customer(created.id, "ACME") is True
    assert await service.get_customer(created.id, "ACME") is None
    assert await service.list_customers("ACME") == []
    assert recording_dispatcher.event_types()[-1] == "customer.deleted"
    assert recording_dispatcher.calls[-1][1]["isActive"] is False


async def test_search_matches_name_email_or_mobile(resolver, tenants):
    service = CustomerService(resolver)
    await service.create_customer("ACME", customer_name="Asha Rao", email="asha@acme.test", mobile_number="9800011111")
    await service.create_customer("ACME", customer_name="Ravi Kumar", email="ravi@acme.test", mobile_number="9800022222")

    assert [c.customer_name for c in await service.search_customers("rao", "ACME")] == ["Asha Rao"]
    assert [c.customer_name for c in await service.search_customers("22222", "ACME")] == ["Ravi Kumar"]
    assert len(await service.search_customers("acme.test", "ACME")) == 2


async def test_webhook_failure_does_not_fail_the_operation(resolver, tenants, recording_dispatcher):
    recording_dispatcher.fail = True
    service = CustomerService(resolver, recording_dispatcher)

    result = await service.create_customer("ACME", customer_name="Asha", email="asha@acme.test")

    assert result.ok
    assert len(await service.list_customers("ACME")) == 1
