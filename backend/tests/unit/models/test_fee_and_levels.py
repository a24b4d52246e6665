"""
Unit Tests for fee balances and gamification levels
"""
from datetime import datetime, timedelta

from campus_portal.models.fee import Fee, FeeStatus, FeeType, effective_fee_status, generate_transaction_id
from campus_portal.models.gamification import GamificationPoint, PointType, level_for
from campus_portal.models.hostel import (
    AllocationStatus, HostelAllocation, HostelRoom, MaintenanceStatus, HostelServiceRequest,
    ServiceRequestStatus,
)

NOW = datetime(2024, 6, 1, 9, 0, 0)


def make_fee(**overrides) -> Fee:
    fields = dict(
        user_id='u1', fee_type=FeeType.TUITION, amount=1000.0, description='Semester tuition',
        due_date=NOW + timedelta(days=10), status=FeeStatus.PENDING, paid_amount=0.0, discount_amount=0.0,
    )
    fields.update(overrides)
    return Fee(**fields)


class TestFeeBalance:
    """Outstanding balance and derived status"""

    def test_outstanding_subtracts_paid_and_discount(self):
        fee = make_fee(paid_amount=300.0, discount_amount=200.0)
        assert fee.outstanding_balance == 500.0

    def test_partial_payment_stays_pending(self):
        fee = make_fee(paid_amount=400.0)
        assert fee.refresh_status(NOW) == FeeStatus.PENDING
        assert fee.paid_at is None

    def test_full_payment_marks_paid(self):
        fee = make_fee(paid_amount=1000.0)
        assert fee.refresh_status(NOW) == FeeStatus.PAID
        assert fee.paid_at == NOW

    def test_unpaid_past_due_becomes_overdue(self):
        fee = make_fee(due_date=NOW - timedelta(days=1))
        assert fee.refresh_status(NOW) == FeeStatus.OVERDUE

    def test_pending_past_due_reads_overdue(self):
        assert effective_fee_status(FeeStatus.PENDING, NOW - timedelta(seconds=1), NOW) == FeeStatus.OVERDUE
        assert effective_fee_status(FeeStatus.PAID, NOW - timedelta(days=5), NOW) == FeeStatus.PAID

    def test_transaction_id_format(self):
        txn = generate_transaction_id()
        assert txn.startswith('TXN')
        assert txn[3:].isdigit()


class TestLevels:
    """Level = floor(total / 100) + 1"""

    def test_zero_points_is_level_one(self):
        assert level_for(0) == {'total_points': 0, 'level': 1, 'points_to_next_level': 100}

    def test_level_boundaries(self):
        assert level_for(99)['level'] == 1
        assert level_for(100)['level'] == 2
        assert level_for(250)['points_to_next_level'] == 50

    def test_multiplier_applies_to_effective_points(self):
        entry = GamificationPoint(user_id='u1', point_type=PointType.MANUAL_AWARD, points=10,
                                  multiplier=1.5, description='bonus')
        assert entry.effective_points == 15.0


class TestHostelRules:
    """Room availability and allocation dates"""

    def test_room_availability(self):
        room = HostelRoom(room_number='B-101', block='b', floor=1, capacity=2, current_occupancy=1,
                          is_active=True, maintenance_status=MaintenanceStatus.GOOD)
        assert room.block == 'B'
        assert room.available_spots == 1
        assert room.can_accommodate(1) is True
        assert room.can_accommodate(2) is False

    def test_room_under_maintenance_is_unavailable(self):
        room = HostelRoom(room_number='B-102', block='B', floor=1, capacity=2, current_occupancy=0,
                          is_active=True, maintenance_status=MaintenanceStatus.UNDER_MAINTENANCE)
        assert room.is_available is False

    def test_check_out_stamps_dates(self):
        allocation = HostelAllocation(user_id='u1', room_id='r1', allocated_date=NOW,
                                      status=AllocationStatus.CHECKED_OUT)
        allocation.stamp_dates(NOW + timedelta(days=30))

        assert allocation.check_in_date == NOW
        assert allocation.check_out_date == NOW + timedelta(days=30)
        assert allocation.stay_duration_days() == 30
        assert allocation.is_active is False

    def test_service_request_transitions(self):
        request = HostelServiceRequest(status=ServiceRequestStatus.IN_PROGRESS)
        assert request.can_transition_to(ServiceRequestStatus.RESOLVED) is True
        assert request.can_transition_to(ServiceRequestStatus.CANCELLED) is False
        assert request.can_cancel is False
