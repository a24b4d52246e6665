"""
Unit Tests for Hostel API Endpoints
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient


async def allocate(client: AsyncClient, room_id: str, headers: dict):
    return await client.post('/api/hostel/allocations', json={
        'room_id': room_id,
        'academic_year': '2024-25',
        'semester': 'odd',
    }, headers=headers)


class TestRooms:
    """Room management"""

    @pytest.mark.asyncio
    async def test_create_room(self, client: AsyncClient, create_room):
        room = await create_room(room_number='B-201', block='b', capacity=3, room_type='triple')

        assert room['block'] == 'B'
        assert room['current_occupancy'] == 0
        assert room['available_spots'] == 3
        assert room['is_available'] is True

    @pytest.mark.asyncio
    async def test_duplicate_room_number(self, client: AsyncClient, create_room, admin_auth_headers):
        room = await create_room()

        response = await client.post('/api/hostel/rooms', json={
            'room_number': room['room_number'],
            'block': 'A',
            'floor': 2,
            'room_type': 'single',
            'capacity': 1,
        }, headers=admin_auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'DUPLICATE_RESOURCE'

    @pytest.mark.asyncio
    async def test_student_cannot_create_room(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/hostel/rooms', json={
            'room_number': 'Z-1', 'block': 'Z', 'floor': 0, 'room_type': 'single', 'capacity': 1,
        }, headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_capacity_above_four_rejected(self, client: AsyncClient, admin_auth_headers):
        response = await client.post('/api/hostel/rooms', json={
            'room_number': 'Q-1', 'block': 'Q', 'floor': 0, 'room_type': 'quad', 'capacity': 5,
        }, headers=admin_auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_filter_available_rooms(self, client: AsyncClient, create_room, auth_headers):
        full = await create_room(capacity=1, room_type='single')
        open_room = await create_room()
        await allocate(client, full['id'], auth_headers)

        response = await client.get('/api/hostel/rooms', params={'availability': 'available'}, headers=auth_headers)

        ids = [r['id'] for r in response.json()['data']['rooms']]
        assert open_room['id'] in ids
        assert full['id'] not in ids

    @pytest.mark.asyncio
    async def test_cannot_delete_occupied_room(self, client: AsyncClient, create_room, auth_headers,
                                               admin_auth_headers):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)

        response = await client.delete(f"/api/hostel/rooms/{room['id']}", headers=admin_auth_headers)
        assert response.status_code == 400


class TestAllocations:
    """Occupancy never exceeds capacity"""

    @pytest.mark.asyncio
    async def test_capacity_two_room(self, client: AsyncClient, create_room, make_user, token_headers,
                                     auth_headers, other_auth_headers):
        room = await create_room(capacity=2)
        third_headers = token_headers(await make_user())

        first = await allocate(client, room['id'], auth_headers)
        assert first.status_code == 201
        assert first.json()['data']['status'] == 'allocated'
        assert first.json()['data']['bed_number'] == 1

        second = await allocate(client, room['id'], other_auth_headers)
        assert second.status_code == 201
        assert second.json()['data']['room']['current_occupancy'] == 2

        third = await allocate(client, room['id'], third_headers)
        assert third.status_code == 400
        assert third.json()['error']['code'] == 'ROOM_FULL'

        cancelled = await client.put(f"/api/hostel/allocations/{first.json()['data']['id']}",
                                     json={'status': 'cancelled'}, headers=auth_headers)
        assert cancelled.status_code == 200
        assert cancelled.json()['data']['room']['current_occupancy'] == 1

        retry = await allocate(client, room['id'], third_headers)
        assert retry.status_code == 201

    @pytest.mark.asyncio
    async def test_freed_bed_is_reused(self, client: AsyncClient, create_room, make_user, token_headers,
                                       auth_headers, other_auth_headers):
        room = await create_room(capacity=2)
        first = (await allocate(client, room['id'], auth_headers)).json()['data']
        second = (await allocate(client, room['id'], other_auth_headers)).json()['data']
        assert [first['bed_number'], second['bed_number']] == [1, 2]

        await client.put(f"/api/hostel/allocations/{first['id']}", json={'status': 'cancelled'},
                         headers=auth_headers)
        third = await allocate(client, room['id'], token_headers(await make_user()))

        assert third.status_code == 201
        assert third.json()['data']['bed_number'] == 1

    @pytest.mark.asyncio
    async def test_one_active_allocation_per_student(self, client: AsyncClient, create_room, auth_headers):
        first_room = await create_room()
        second_room = await create_room()
        await allocate(client, first_room['id'], auth_headers)

        response = await allocate(client, second_room['id'], auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'ALREADY_ALLOCATED'

    @pytest.mark.asyncio
    async def test_room_under_maintenance(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room(maintenance_status='under_maintenance')

        response = await allocate(client, room['id'], auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'ROOM_UNAVAILABLE'

    @pytest.mark.asyncio
    async def test_check_in_and_out(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room()
        allocation = (await allocate(client, room['id'], auth_headers)).json()['data']

        checked_in = await client.put(f"/api/hostel/allocations/{allocation['id']}",
                                      json={'status': 'checked_in'}, headers=auth_headers)
        assert checked_in.json()['data']['check_in_date'] is not None

        checked_out = await client.put(f"/api/hostel/allocations/{allocation['id']}",
                                       json={'status': 'checked_out'}, headers=auth_headers)
        data = checked_out.json()['data']
        assert data['status'] == 'checked_out'
        assert data['check_out_date'] is not None
        assert data['room']['current_occupancy'] == 0

    @pytest.mark.asyncio
    async def test_student_cannot_skip_states(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room()
        allocation = (await allocate(client, room['id'], auth_headers)).json()['data']

        response = await client.put(f"/api/hostel/allocations/{allocation['id']}",
                                    json={'status': 'checked_out'}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_STATUS'

    @pytest.mark.asyncio
    async def test_unknown_status(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room()
        allocation = (await allocate(client, room['id'], auth_headers)).json()['data']

        response = await client.put(f"/api/hostel/allocations/{allocation['id']}",
                                    json={'status': 'evicted'}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['message'] == 'Invalid status'

    @pytest.mark.asyncio
    async def test_other_student_cannot_update(self, client: AsyncClient, create_room, auth_headers,
                                               other_auth_headers):
        room = await create_room()
        allocation = (await allocate(client, room['id'], auth_headers)).json()['data']

        response = await client.put(f"/api/hostel/allocations/{allocation['id']}",
                                    json={'status': 'cancelled'}, headers=other_auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_reassign_moves_occupancy(self, client: AsyncClient, create_room, auth_headers,
                                            admin_auth_headers):
        old_room = await create_room()
        new_room = await create_room()
        allocation = (await allocate(client, old_room['id'], auth_headers)).json()['data']

        response = await client.put('/api/hostel/reassign-room', json={
            'allocation_id': allocation['id'],
            'new_room_id': new_room['id'],
            'reason': 'Closer to the lab',
        }, headers=admin_auth_headers)

        assert response.status_code == 200
        assert response.json()['data']['room_id'] == new_room['id']
        old = await client.get(f"/api/hostel/rooms/{old_room['id']}", headers=auth_headers)
        new = await client.get(f"/api/hostel/rooms/{new_room['id']}", headers=auth_headers)
        assert old.json()['data']['current_occupancy'] == 0
        assert new.json()['data']['current_occupancy'] == 1

    @pytest.mark.asyncio
    async def test_reassign_takes_free_bed(self, client: AsyncClient, create_room, make_user, token_headers,
                                           auth_headers, other_auth_headers, admin_auth_headers):
        old_room = await create_room()
        new_room = await create_room(capacity=2)
        leaving = (await allocate(client, new_room['id'], other_auth_headers)).json()['data']
        staying = (await allocate(client, new_room['id'], token_headers(await make_user()))).json()['data']
        await client.put(f"/api/hostel/allocations/{leaving['id']}", json={'status': 'cancelled'},
                         headers=other_auth_headers)
        allocation = (await allocate(client, old_room['id'], auth_headers)).json()['data']

        response = await client.put('/api/hostel/reassign-room', json={
            'allocation_id': allocation['id'],
            'new_room_id': new_room['id'],
        }, headers=admin_auth_headers)

        assert response.status_code == 200
        assert staying['bed_number'] == 2
        assert response.json()['data']['bed_number'] == 1

    @pytest.mark.asyncio
    async def test_my_room_lists_roommates(self, client: AsyncClient, create_room, auth_headers,
                                           other_auth_headers, other_user):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)
        await allocate(client, room['id'], other_auth_headers)

        response = await client.get('/api/hostel/my-room', headers=auth_headers)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['allocation']['room_id'] == room['id']
        assert [m['id'] for m in data['roommates']] == [other_user.id]

    @pytest.mark.asyncio
    async def test_my_room_without_allocation(self, client: AsyncClient, auth_headers):
        response = await client.get('/api/hostel/my-room', headers=auth_headers)

        assert response.status_code == 404
        assert response.json()['message'] == 'No room allocation found'

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, create_room, auth_headers, admin_auth_headers):
        room = await create_room(capacity=2)
        await create_room(capacity=2)
        await allocate(client, room['id'], auth_headers)

        response = await client.get('/api/hostel/stats', headers=admin_auth_headers)

        stats = response.json()['data']
        assert stats['total_rooms'] == 2
        assert stats['occupied_rooms'] == 1
        assert stats['total_capacity'] == 4
        assert stats['occupancy_rate'] == 25.0
        assert stats['pending_allocations'] == 1


class TestServiceRequests:
    """Maintenance and room change requests"""

    @pytest.mark.asyncio
    async def test_request_needs_allocation(self, client: AsyncClient, auth_headers):
        response = await client.post('/api/hostel/service-requests', json={
            'request_type': 'plumbing',
            'title': 'Leaking tap',
            'description': 'The bathroom tap drips all night',
        }, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'NO_ACTIVE_ALLOCATION'

    @pytest.mark.asyncio
    async def test_request_lifecycle(self, client: AsyncClient, create_room, auth_headers, admin_auth_headers):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)

        created = await client.post('/api/hostel/service-requests', json={
            'request_type': 'electrical',
            'title': 'Fan not working',
            'description': 'Ceiling fan stopped',
            'priority': 'high',
        }, headers=auth_headers)
        assert created.status_code == 201
        request = created.json()['data']
        assert request['room_id'] == room['id']
        assert request['status'] == 'submitted'

        progress = await client.put(f"/api/hostel/service-requests/{request['id']}",
                                    json={'status': 'in_progress', 'assigned_to': 'Ravi (electrician)'},
                                    headers=admin_auth_headers)
        assert progress.json()['data']['can_cancel'] is False

        cancel = await client.post(f"/api/hostel/service-requests/{request['id']}/cancel", headers=auth_headers)
        assert cancel.status_code == 400

        resolved = await client.put(f"/api/hostel/service-requests/{request['id']}",
                                    json={'status': 'resolved'}, headers=admin_auth_headers)
        assert resolved.json()['data']['completed_date'] is not None

        feedback = await client.post(f"/api/hostel/service-requests/{request['id']}/feedback",
                                     json={'rating': 4, 'comment': 'Quick fix'}, headers=auth_headers)
        assert feedback.json()['data']['feedback_rating'] == 4

        again = await client.post(f"/api/hostel/service-requests/{request['id']}/feedback",
                                  json={'rating': 5}, headers=auth_headers)
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_resolved_cannot_reopen(self, client: AsyncClient, create_room, auth_headers,
                                          admin_auth_headers):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)
        created = await client.post('/api/hostel/service-requests', json={
            'request_type': 'cleaning', 'title': 'Deep clean', 'description': 'Before exams',
        }, headers=auth_headers)
        request_id = created.json()['data']['id']
        resolved = await client.put(f"/api/hostel/service-requests/{request_id}", json={'status': 'resolved'},
                                    headers=admin_auth_headers)
        assert resolved.status_code == 200

        response = await client.put(f"/api/hostel/service-requests/{request_id}",
                                    json={'status': 'in_progress'}, headers=admin_auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_student_sees_only_own_requests(self, client: AsyncClient, create_room, auth_headers,
                                                  other_auth_headers, admin_auth_headers):
        room = await create_room()
        for headers in (auth_headers, other_auth_headers):
            await allocate(client, room['id'], headers)
            await client.post('/api/hostel/service-requests', json={
                'request_type': 'furniture', 'title': 'Broken chair', 'description': 'Leg snapped',
            }, headers=headers)

        own = await client.get('/api/hostel/service-requests', headers=auth_headers)
        assert own.json()['data']['pagination']['total'] == 1

        everyone = await client.get('/api/hostel/service-requests', headers=admin_auth_headers)
        assert everyone.json()['data']['pagination']['total'] == 2

    @pytest.mark.asyncio
    async def test_past_schedule_rejected(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)

        response = await client.post('/api/hostel/service-requests', json={
            'request_type': 'pest_control',
            'title': 'Ants',
            'description': 'Ants near the window',
            'scheduled_date': (datetime.utcnow() - timedelta(days=1)).isoformat(),
        }, headers=auth_headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_single_pending_change_request(self, client: AsyncClient, create_room, auth_headers):
        room = await create_room()
        await allocate(client, room['id'], auth_headers)

        first = await client.post('/api/hostel/change-request', json={'reason': 'Too noisy'}, headers=auth_headers)
        assert first.status_code == 201
        assert first.json()['data']['request_type'] == 'room_change'

        second = await client.post('/api/hostel/change-request', json={'reason': 'Still noisy'},
                                   headers=auth_headers)
        assert second.status_code == 400
        assert second.json()['error']['code'] == 'DUPLICATE_REQUEST'
