"""Tests for customer seeding."""

import pytest

from payment_notifications.seed import seed_customers


@pytest.mark.asyncio
async def test_seed_customers(db):
    ids = await seed_customers(db, 3)

    assert len(ids) == 3
    names = [(await db.get_customer(customer_id)).name for customer_id in ids]
    assert names == ["customer 0", "customer 1", "customer 2"]
