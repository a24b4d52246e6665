"""
Unit Tests for Gamification API Endpoints
"""
import pytest
from httpx import AsyncClient


@pytest.fixture
def create_badge(client: AsyncClient, admin_auth_headers: dict):
    async def _create_badge(**overrides) -> dict:
        payload = {
            'name': 'Bookworm',
            'description': 'Returned ten books on time',
            'points': 50,
            'category': 'academic',
            'rarity': 'rare',
        }
        payload.update(overrides)
        response = await client.post('/api/gamification/badges', json=payload, headers=admin_auth_headers)
        assert response.status_code == 201, response.text
        return response.json()['data']

    return _create_badge


class TestPoints:
    """Point ledger and levels"""

    @pytest.mark.asyncio
    async def test_new_user_is_level_one(self, client: AsyncClient, auth_headers):
        response = await client.get('/api/gamification/points', headers=auth_headers)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['total_points'] == 0
        assert data['level'] == 1
        assert data['points_to_next_level'] == 100
        assert data['badges'] == []

    @pytest.mark.asyncio
    async def test_add_points_with_multiplier(self, client: AsyncClient, test_user, auth_headers,
                                              admin_auth_headers):
        response = await client.post('/api/gamification/add-points', json={
            'user_id': test_user.id,
            'points': 80,
            'description': 'Hackathon winner',
            'point_type': 'event_participation',
            'multiplier': 1.5,
        }, headers=admin_auth_headers)

        assert response.status_code == 200
        assert response.json()['data']['effective_points'] == 120.0

        profile = await client.get('/api/gamification/points', headers=auth_headers)
        data = profile.json()['data']
        assert data['total_points'] == 120.0
        assert data['level'] == 2
        assert data['points_by_type'] == {'event_participation': 120.0}
        assert data['recent_points'][0]['description'] == 'Hackathon winner'

    @pytest.mark.asyncio
    async def test_student_cannot_add_points(self, client: AsyncClient, test_user, auth_headers):
        response = await client.post('/api/gamification/add-points', json={
            'user_id': test_user.id, 'points': 1000, 'description': 'Self award',
        }, headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_points_for_unknown_user(self, client: AsyncClient, admin_auth_headers):
        response = await client.post('/api/gamification/add-points', json={
            'user_id': '00000000-0000-0000-0000-000000000000', 'points': 5, 'description': 'Ghost',
        }, headers=admin_auth_headers)
        assert response.status_code == 404


class TestBadges:
    """Badge catalogue and awards"""

    @pytest.mark.asyncio
    async def test_award_badge_once(self, client: AsyncClient, create_badge, test_user, auth_headers,
                                    admin_auth_headers):
        badge = await create_badge()

        first = await client.post('/api/gamification/award-badge', json={
            'user_id': test_user.id, 'badge_id': badge['id'],
        }, headers=admin_auth_headers)
        assert first.status_code == 200

        second = await client.post('/api/gamification/award-badge', json={
            'user_id': test_user.id, 'badge_id': badge['id'],
        }, headers=admin_auth_headers)
        assert second.status_code == 400
        assert second.json()['message'] == 'Badge already awarded to this user'

        profile = await client.get('/api/gamification/points', headers=auth_headers)
        data = profile.json()['data']
        assert data['total_points'] == 50
        assert [b['badge']['name'] for b in data['badges']] == ['Bookworm']

    @pytest.mark.asyncio
    async def test_duplicate_badge_name(self, client: AsyncClient, create_badge, admin_auth_headers):
        await create_badge(name='Early Bird')

        response = await client.post('/api/gamification/badges', json={
            'name': 'Early Bird', 'description': 'Again',
        }, headers=admin_auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_badges_by_rarity(self, client: AsyncClient, create_badge, auth_headers):
        await create_badge(name='Common One', rarity='common')
        await create_badge(name='Legend', rarity='legendary')

        response = await client.get('/api/gamification/badges', params={'rarity': 'legendary'},
                                    headers=auth_headers)

        assert [b['name'] for b in response.json()['data']] == ['Legend']


class TestLeaderboard:
    """Ranking by points"""

    @pytest.mark.asyncio
    async def test_ranking_order(self, client: AsyncClient, test_user, other_user, auth_headers,
                                 admin_auth_headers):
        for user, points in ((test_user, 30), (other_user, 70)):
            await client.post('/api/gamification/add-points', json={
                'user_id': user.id, 'points': points, 'description': 'Quiz',
            }, headers=admin_auth_headers)

        response = await client.get('/api/gamification/leaderboard', params={'period': 'week'},
                                    headers=auth_headers)

        data = response.json()['data']
        assert data['period'] == 'week'
        assert [entry['user_id'] for entry in data['leaderboard']] == [other_user.id, test_user.id]
        assert [entry['rank'] for entry in data['leaderboard']] == [1, 2]
        assert data['leaderboard'][0]['total_points'] == 70

    @pytest.mark.asyncio
    async def test_department_filter(self, client: AsyncClient, make_user, test_user, auth_headers,
                                     admin_auth_headers):
        outsider = await make_user(department='Civil')
        for user in (test_user, outsider):
            await client.post('/api/gamification/add-points', json={
                'user_id': user.id, 'points': 10, 'description': 'Attendance',
            }, headers=admin_auth_headers)

        response = await client.get('/api/gamification/leaderboard', params={'department': 'Civil'},
                                    headers=auth_headers)

        assert [entry['user_id'] for entry in response.json()['data']['leaderboard']] == [outsider.id]

    @pytest.mark.asyncio
    async def test_invalid_period(self, client: AsyncClient, auth_headers):
        response = await client.get('/api/gamification/leaderboard', params={'period': 'decade'},
                                    headers=auth_headers)
        assert response.status_code == 400
