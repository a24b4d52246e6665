"""
Unit Tests for Fee API Endpoints
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient


@pytest.fixture
def create_fee(client: AsyncClient, admin_auth_headers: dict):
    """POST a fee as admin and return its data"""
    async def _create_fee(user_id: str, **overrides) -> dict:
        payload = {
            'user_id': user_id,
            'fee_type': 'tuition',
            'amount': 1000.0,
            'description': 'Semester tuition',
            'due_date': (datetime.utcnow() + timedelta(days=30)).isoformat(),
            'academic_year': '2024-25',
        }
        payload.update(overrides)
        response = await client.post('/api/fees', json=payload, headers=admin_auth_headers)
        assert response.status_code == 201, response.text
        return response.json()['data']

    return _create_fee


class TestFeeManagement:
    """Creating and listing fees"""

    @pytest.mark.asyncio
    async def test_create_fee(self, create_fee, test_user):
        fee = await create_fee(test_user.id)

        assert fee['status'] == 'pending'
        assert fee['outstanding_balance'] == 1000.0
        assert fee['user_id'] == test_user.id

    @pytest.mark.asyncio
    async def test_fee_for_unknown_user(self, client: AsyncClient, admin_auth_headers):
        response = await client.post('/api/fees', json={
            'user_id': '00000000-0000-0000-0000-000000000000',
            'fee_type': 'library',
            'amount': 50.0,
            'description': 'Late fee',
            'due_date': datetime.utcnow().isoformat(),
        }, headers=admin_auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_student_cannot_create_fee(self, client: AsyncClient, test_user, auth_headers):
        response = await client.post('/api/fees', json={
            'user_id': test_user.id,
            'fee_type': 'tuition',
            'amount': 1.0,
            'description': 'Free ride',
            'due_date': datetime.utcnow().isoformat(),
        }, headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_students_see_only_their_fees(self, client: AsyncClient, create_fee, test_user, other_user,
                                                auth_headers, admin_auth_headers):
        await create_fee(test_user.id)
        await create_fee(other_user.id)

        own = await client.get('/api/fees', headers=auth_headers)
        assert own.json()['data']['pagination']['total'] == 1

        everyone = await client.get('/api/fees', headers=admin_auth_headers)
        assert everyone.json()['data']['pagination']['total'] == 2

        filtered = await client.get('/api/fees', params={'user_id': other_user.id}, headers=admin_auth_headers)
        assert [f['user_id'] for f in filtered.json()['data']['fees']] == [other_user.id]

    @pytest.mark.asyncio
    async def test_cannot_view_other_students_fee(self, client: AsyncClient, create_fee, test_user,
                                                  other_auth_headers):
        fee = await create_fee(test_user.id)
        response = await client.get(f"/api/fees/{fee['id']}", headers=other_auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_past_due_reads_overdue(self, client: AsyncClient, create_fee, test_user, auth_headers):
        await create_fee(test_user.id, due_date=(datetime.utcnow() - timedelta(days=2)).isoformat())

        response = await client.get('/api/fees', params={'status': 'overdue'}, headers=auth_headers)

        fees = response.json()['data']['fees']
        assert len(fees) == 1
        assert fees[0]['status'] == 'overdue'

    @pytest.mark.asyncio
    async def test_bulk_create(self, client: AsyncClient, test_user, other_user, admin_auth_headers):
        response = await client.post('/api/fees/bulk', json={
            'student_ids': [test_user.id, other_user.id],
            'fee_data': {
                'fee_type': 'examination',
                'amount': 750.0,
                'description': 'End semester examination',
                'due_date': (datetime.utcnow() + timedelta(days=10)).isoformat(),
            },
        }, headers=admin_auth_headers)

        assert response.status_code == 201
        assert {f['user_id'] for f in response.json()['data']} == {test_user.id, other_user.id}

    @pytest.mark.asyncio
    async def test_bulk_create_rejects_unknown_ids(self, client: AsyncClient, test_user, admin_auth_headers):
        response = await client.post('/api/fees/bulk', json={
            'student_ids': [test_user.id, '00000000-0000-0000-0000-000000000000'],
            'fee_data': {
                'fee_type': 'other',
                'amount': 100.0,
                'description': 'Lab coat',
                'due_date': datetime.utcnow().isoformat(),
            },
        }, headers=admin_auth_headers)

        assert response.status_code == 400
        listing = await client.get('/api/fees', headers=admin_auth_headers)
        assert listing.json()['data']['pagination']['total'] == 0


class TestPayments:
    """Paying, refunding and reducing fees"""

    @pytest.mark.asyncio
    async def test_partial_then_full_payment(self, client: AsyncClient, create_fee, test_user, auth_headers):
        fee = await create_fee(test_user.id)

        partial = await client.post(f"/api/fees/{fee['id']}/pay", json={
            'amount': 400.0, 'payment_method': 'upi', 'transaction_id': 'TXN-PART-1',
        }, headers=auth_headers)
        assert partial.status_code == 200
        data = partial.json()['data']
        assert data['fee']['status'] == 'pending'
        assert data['fee']['outstanding_balance'] == 600.0
        assert data['transaction']['status'] == 'completed'

        rest = await client.post(f"/api/fees/{fee['id']}/pay", json={'transaction_id': 'TXN-PART-2'},
                                 headers=auth_headers)
        data = rest.json()['data']
        assert data['transaction']['amount'] == 600.0
        assert data['fee']['status'] == 'paid'
        assert data['fee']['paid_at'] is not None

        again = await client.post(f"/api/fees/{fee['id']}/pay", json={'transaction_id': 'TXN-PART-3'},
                                  headers=auth_headers)
        assert again.status_code == 400
        assert again.json()['error']['code'] == 'FEE_ALREADY_PAID'

    @pytest.mark.asyncio
    async def test_overpayment_rejected(self, client: AsyncClient, create_fee, test_user, auth_headers):
        fee = await create_fee(test_user.id)

        response = await client.post(f"/api/fees/{fee['id']}/pay", json={'amount': 1500.0}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_PAYMENT_AMOUNT'

    @pytest.mark.asyncio
    async def test_duplicate_transaction_id(self, client: AsyncClient, create_fee, test_user, auth_headers):
        first_fee = await create_fee(test_user.id)
        second_fee = await create_fee(test_user.id, fee_type='hostel')
        await client.post(f"/api/fees/{first_fee['id']}/pay", json={'transaction_id': 'TXN-DUP'},
                          headers=auth_headers)

        response = await client.post(f"/api/fees/{second_fee['id']}/pay", json={'transaction_id': 'TXN-DUP'},
                                     headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'DUPLICATE_TRANSACTION'

    @pytest.mark.asyncio
    async def test_cannot_pay_someone_elses_fee(self, client: AsyncClient, create_fee, test_user,
                                                other_auth_headers):
        fee = await create_fee(test_user.id)

        response = await client.post(f"/api/fees/{fee['id']}/pay", headers=other_auth_headers)

        assert response.status_code == 403
        assert response.json()['message'] == 'You can only pay your own fees'

    @pytest.mark.asyncio
    async def test_on_time_payment_earns_points(self, client: AsyncClient, create_fee, test_user, auth_headers):
        fee = await create_fee(test_user.id)
        await client.post(f"/api/fees/{fee['id']}/pay", headers=auth_headers)

        profile = await client.get('/api/gamification/points', headers=auth_headers)
        assert profile.json()['data']['total_points'] > 0

    @pytest.mark.asyncio
    async def test_refund_reopens_fee(self, client: AsyncClient, create_fee, test_user, auth_headers,
                                      admin_auth_headers):
        fee = await create_fee(test_user.id)
        paid = await client.post(f"/api/fees/{fee['id']}/pay", json={'transaction_id': 'TXN-REFUND'},
                                 headers=auth_headers)
        transaction = paid.json()['data']['transaction']

        response = await client.post(f"/api/fees/payments/{transaction['id']}/refund",
                                     json={'amount': 250.0, 'reason': 'Scholarship adjustment'},
                                     headers=admin_auth_headers)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['transaction']['refund_amount'] == 250.0
        assert data['transaction']['status'] == 'completed'
        assert data['fee']['status'] == 'pending'
        assert data['fee']['outstanding_balance'] == 250.0

        full = await client.post(f"/api/fees/payments/{transaction['id']}/refund",
                                 json={'reason': 'Withdrawn'}, headers=admin_auth_headers)
        assert full.json()['data']['transaction']['status'] == 'refunded'

        again = await client.post(f"/api/fees/payments/{transaction['id']}/refund",
                                  json={'reason': 'Twice'}, headers=admin_auth_headers)
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_student_cannot_refund(self, client: AsyncClient, create_fee, test_user, auth_headers):
        fee = await create_fee(test_user.id)
        paid = await client.post(f"/api/fees/{fee['id']}/pay", headers=auth_headers)

        response = await client.post(f"/api/fees/payments/{paid.json()['data']['transaction']['id']}/refund",
                                     json={'reason': 'Please'}, headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_receipt(self, client: AsyncClient, create_fee, test_user, auth_headers, other_auth_headers):
        fee = await create_fee(test_user.id)
        paid = await client.post(f"/api/fees/{fee['id']}/pay", json={'transaction_id': 'TXN-RECEIPT'},
                                 headers=auth_headers)
        transaction_id = paid.json()['data']['transaction']['id']

        response = await client.get(f"/api/fees/payments/{transaction_id}/receipt", headers=auth_headers)

        receipt = response.json()['data']
        assert receipt['student']['id'] == test_user.id
        assert receipt['payment']['transaction_id'] == 'TXN-RECEIPT'
        assert receipt['fee']['amount'] == 1000.0

        response = await client.get(f"/api/fees/payments/{transaction_id}/receipt", headers=other_auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_payment_history(self, client: AsyncClient, create_fee, test_user, auth_headers):
        fee = await create_fee(test_user.id)
        await client.post(f"/api/fees/{fee['id']}/pay", json={'amount': 100.0, 'transaction_id': 'TXN-H1'},
                          headers=auth_headers)
        await client.post(f"/api/fees/{fee['id']}/pay", json={'amount': 200.0, 'transaction_id': 'TXN-H2'},
                          headers=auth_headers)

        response = await client.get('/api/fees/payments', headers=auth_headers)

        assert response.json()['data']['pagination']['total'] == 2

    @pytest.mark.asyncio
    async def test_discount_and_waiver(self, client: AsyncClient, create_fee, test_user, admin_auth_headers):
        fee = await create_fee(test_user.id)

        discount = await client.post(f"/api/fees/{fee['id']}/discount-waiver", json={
            'type': 'discount', 'percentage': 10, 'reason': 'Merit scholarship',
        }, headers=admin_auth_headers)
        assert discount.json()['data']['outstanding_balance'] == 900.0

        waiver = await client.post(f"/api/fees/{fee['id']}/discount-waiver", json={
            'type': 'waiver', 'amount': 900.0, 'reason': 'Hardship',
        }, headers=admin_auth_headers)
        assert waiver.json()['data']['status'] == 'paid'

    @pytest.mark.asyncio
    async def test_discount_requires_percentage(self, client: AsyncClient, create_fee, test_user,
                                                admin_auth_headers):
        fee = await create_fee(test_user.id)
        response = await client.post(f"/api/fees/{fee['id']}/discount-waiver", json={
            'type': 'discount', 'reason': 'Missing value',
        }, headers=admin_auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_delete_paid_fee(self, client: AsyncClient, create_fee, test_user, auth_headers,
                                          admin_auth_headers):
        fee = await create_fee(test_user.id)
        await client.post(f"/api/fees/{fee['id']}/pay", json={'amount': 10.0}, headers=auth_headers)

        response = await client.delete(f"/api/fees/{fee['id']}", headers=admin_auth_headers)
        assert response.status_code == 400


class TestFeeSummary:
    """Totals by status"""

    @pytest.mark.asyncio
    async def test_summary(self, client: AsyncClient, create_fee, test_user, auth_headers):
        await create_fee(test_user.id, amount=500.0, due_date=(datetime.utcnow() + timedelta(days=3)).isoformat())
        await create_fee(test_user.id, amount=300.0, due_date=(datetime.utcnow() - timedelta(days=3)).isoformat())
        paid = await create_fee(test_user.id, amount=200.0)
        await client.post(f"/api/fees/{paid['id']}/pay", json={'transaction_id': 'TXN-SUM'}, headers=auth_headers)

        response = await client.get('/api/fees/summary', headers=auth_headers)

        summary = response.json()['data']
        assert summary['total_fees'] == 3
        assert summary['overdue_fees'] == 1
        assert summary['upcoming_fees'] == 1
        assert summary['by_status']['paid']['count'] == 1
        assert summary['by_status']['overdue']['total_amount'] == 300.0
        assert summary['outstanding_total'] == 800.0
