"""Tests for the REST API."""

import uuid

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from payment_notifications.api.notification_api import create_app

PAYMENT = {
    'customer_id': None,
    'details': {
        'reference_id': 'ref1',
        'amount': 100.0,
        'currency': 'SGD',
        'channel_code': 'card',
        'market': 'SG'
    }
}


@pytest_asyncio.fixture
async def api(db, queue, dispatcher, resender):
    app = create_app(db=db, dispatcher=dispatcher, resender=resender)
    await queue.start()
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


def setup_body(customer_id, **overrides):
    body = {
        'is_test': False,
        'secret_key': 'secret',
        'customer_id': customer_id,
        'url': 'https://example.com/hook',
        'token': 'abc'
    }
    body.update(overrides)
    return body


class TestSetupNotification:

    @pytest.mark.asyncio
    async def test_stores_configuration(self, api, db, customer_id):
        resp = await api.post(
            '/notifications',
            json=setup_body(customer_id),
            headers={'Authorization': 'Bearer abc'}
        )

        assert resp.status == 201
        data = await resp.json()
        uuid.UUID(data['idempotency_key'])
        assert await db.lookup_webhook(customer_id) == ('https://example.com/hook', 'abc')

    @pytest.mark.asyncio
    async def test_test_mode_sends_canned_notification(self, api, db, customer_id, queue, mock_client):
        resp = await api.post(
            '/notifications',
            json=setup_body(customer_id, is_test=True),
            headers={'Authorization': 'Bearer abc'}
        )

        assert resp.status == 202
        assert await resp.text() == ''
        await queue.join()
        url, token, body = mock_client.deliver.await_args.args
        assert url == 'https://example.com/hook'
        assert token == 'abc'
        assert 'test_idempotency_key' in body
        assert await db.lookup_webhook(customer_id) == ('', '')

    @pytest.mark.asyncio
    async def test_missing_authorization(self, api, customer_id):
        resp = await api.post('/notifications', json=setup_body(customer_id))

        assert resp.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/hook", "/relative/path", ""])
    async def test_invalid_url(self, api, customer_id, url):
        resp = await api.post(
            '/notifications',
            json=setup_body(customer_id, url=url),
            headers={'Authorization': 'Bearer abc'}
        )

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_invalid_json(self, api):
        resp = await api.post(
            '/notifications',
            data='{not json',
            headers={'Authorization': 'Bearer abc', 'Content-Type': 'application/json'}
        )

        assert resp.status == 400
        assert (await resp.json())['error'] == 'Invalid JSON body'

    @pytest.mark.asyncio
    async def test_unknown_customer(self, api):
        resp = await api.post(
            '/notifications',
            json=setup_body(999),
            headers={'Authorization': 'Bearer abc'}
        )

        assert resp.status == 404


class TestMockPayment:

    @pytest.mark.asyncio
    async def test_payment_is_accepted_and_delivered(self, api, db, customer_id, queue):
        await db.configure_webhook(customer_id, 'abc', 'https://example.com/hook')

        resp = await api.post('/payments', json={**PAYMENT, 'customer_id': customer_id})

        assert resp.status == 202
        await queue.join()
        row = await db.fetch_one("SELECT idempotency_key FROM notifications")
        status = await api.get(f"/notifications/{row['idempotency_key']}")
        assert status.status == 200
        notification = (await status.json())['notification']
        assert notification['delivered'] is True
        assert notification['customer_id'] == customer_id

    @pytest.mark.asyncio
    async def test_unconfigured_customer_still_accepted(self, api, db, customer_id, mock_client):
        resp = await api.post('/payments', json={**PAYMENT, 'customer_id': customer_id})

        assert resp.status == 202
        assert await db.fetch_one("SELECT idempotency_key FROM notifications") is None
        mock_client.deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_details(self, api, customer_id):
        resp = await api.post('/payments', json={'customer_id': customer_id, 'details': {'amount': 1}})

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_missing_customer_id(self, api):
        resp = await api.post('/payments', json={'details': PAYMENT['details']})

        assert resp.status == 400


class TestResend:

    @pytest.mark.asyncio
    async def test_unknown_key_still_accepted(self, api, db, customer_id, queue, mock_client):
        await db.configure_webhook(customer_id, 'abc', 'https://example.com/hook')

        resp = await api.post('/notifications/resend', json={
            'customer_id': customer_id,
            'token': 'abc',
            'secret_key': 'secret',
            'idempotency_key': 'does-not-exist'
        })

        assert resp.status == 202
        await queue.join()
        mock_client.deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resend_redelivers(self, api, db, customer_id, details, queue, mock_client):
        await db.configure_webhook(customer_id, 'abc', 'https://example.com/hook')
        await db.create_notification('key-1', customer_id, details)

        resp = await api.post('/notifications/resend', json={
            'customer_id': customer_id,
            'token': 'abc',
            'secret_key': 'secret',
            'idempotency_key': 'key-1'
        })

        assert resp.status == 202
        await queue.join()
        mock_client.deliver.assert_awaited_once()
        assert (await db.get_notification('key-1')).delivered is True

    @pytest.mark.asyncio
    async def test_missing_key(self, api, customer_id):
        resp = await api.post('/notifications/resend', json={'customer_id': customer_id})

        assert resp.status == 400


class TestStatusEndpoints:

    @pytest.mark.asyncio
    async def test_unknown_notification(self, api):
        resp = await api.get('/notifications/missing')

        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_health(self, api):
        resp = await api.get('/health')

        assert resp.status == 200
        assert (await resp.json())['status'] == 'healthy'


class TestOutOfRangeInput:

    @pytest.mark.asyncio
    async def test_amount_beyond_decimal_precision(self, api, db, customer_id):
        await db.configure_webhook(customer_id, 'abc', 'https://example.com/hook')
        details = {**PAYMENT['details'], 'amount': 1e30}

        resp = await api.post('/payments', json={'customer_id': customer_id, 'details': details})

        assert resp.status == 400
        assert await db.fetch_one("SELECT idempotency_key FROM notifications") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ['/payments', '/notifications/resend'])
    async def test_customer_id_beyond_column_range(self, api, path):
        resp = await api.post(path, json={
            **PAYMENT,
            'customer_id': 2 ** 70,
            'idempotency_key': 'key-1'
        })

        assert resp.status == 400
        assert 'customer_id' in (await resp.json())['error']


class TestCustomerEndpoint:

    @pytest.mark.asyncio
    async def test_token_is_masked(self, api, db, customer_id):
        await db.configure_webhook(customer_id, 'abc', 'https://example.com/hook')

        resp = await api.get(f'/customers/{customer_id}')

        assert resp.status == 200
        data = await resp.json()
        assert data['configured'] is True
        assert data['customer']['notification_url'] == 'https://example.com/hook'
        assert data['customer']['token'] == '***'

    @pytest.mark.asyncio
    async def test_unconfigured_customer(self, api, customer_id):
        resp = await api.get(f'/customers/{customer_id}')

        data = await resp.json()
        assert data['configured'] is False
        assert data['customer']['token'] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path, status", [
        ('/customers/999', 404),
        ('/customers/abc', 400),
        (f'/customers/{2 ** 70}', 400),
    ])
    async def test_bad_lookups(self, api, path, status):
        resp = await api.get(path)

        assert resp.status == status
