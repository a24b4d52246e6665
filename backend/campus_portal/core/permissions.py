"""
Capability-based authorization for Campus Portal.

Every handler asks one question, ``has_capability(role, capability)``,
instead of comparing role strings. Roles map to a fixed capability set.
"""
import enum
from typing import Dict, FrozenSet, Union

from campus_portal.core.exceptions import AuthorizationError
from campus_portal.models.user import UserRole


class Capability(str, enum.Enum):
    """Things a caller may be allowed to do"""
    # Library
    MANAGE_CATALOGUE = "manage_catalogue"
    VIEW_ALL_BORROWS = "view_all_borrows"
    MANAGE_BORROWS = "manage_borrows"  # act on any user's borrow record
    DELETE_BORROW_RECORDS = "delete_borrow_records"

    # Hostel
    MANAGE_ROOMS = "manage_rooms"
    VIEW_ALL_ALLOCATIONS = "view_all_allocations"
    MANAGE_ALLOCATIONS = "manage_allocations"
    MANAGE_SERVICE_REQUESTS = "manage_service_requests"

    # Fees
    VIEW_ALL_FEES = "view_all_fees"
    MANAGE_FEES = "manage_fees"
    PAY_ANY_FEE = "pay_any_fee"
    REFUND_PAYMENTS = "refund_payments"

    # Gamification
    MANAGE_GAMIFICATION = "manage_gamification"

    # Reports
    VIEW_REPORTS = "view_reports"


_STUDENT: FrozenSet[Capability] = frozenset()

_FACULTY: FrozenSet[Capability] = frozenset({
    Capability.VIEW_ALL_BORROWS,
    Capability.VIEW_REPORTS,
})

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.STUDENT: _STUDENT,
    UserRole.FACULTY: _FACULTY,
    UserRole.ADMIN: frozenset(Capability),
}


def capabilities_for(role: Union[UserRole, str]) -> FrozenSet[Capability]:
    """Capability set for a role; unknown roles get nothing"""
    try:
        role = UserRole(role)
    except ValueError:
        return frozenset()
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role: Union[UserRole, str], capability: Capability) -> bool:
    """The single authorization policy consulted by every handler"""
    return capability in capabilities_for(role)


def can_act_on(user, owner_id, capability: Capability) -> bool:
    """Owner of the resource, or a caller holding ``capability``"""
    return str(user.id) == str(owner_id) or has_capability(user.role, capability)


def ensure_owner_or_capability(user, owner_id, capability: Capability,
                               message: str = "Not authorized to access this resource") -> None:
    """Raise AuthorizationError unless ``can_act_on`` allows it"""
    if not can_act_on(user, owner_id, capability):
        raise AuthorizationError(message)
