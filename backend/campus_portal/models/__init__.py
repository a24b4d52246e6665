# Re-export all models for convenient imports
from campus_portal.models.user import User, UserRole
from campus_portal.models.library import (
    Book, BookCategory, BookCondition, BorrowRecord, BorrowStatus, ReadingProgress,
)
from campus_portal.models.hostel import (
    HostelRoom, RoomType, MaintenanceStatus,
    HostelAllocation, AllocationStatus,
    HostelServiceRequest, ServiceRequestType, ServiceRequestPriority, ServiceRequestStatus,
)
from campus_portal.models.fee import (
    Fee, FeeType, FeeStatus, PaymentMethod, PaymentTransaction, TransactionStatus, Currency,
)
from campus_portal.models.gamification import (
    Badge, BadgeCategory, BadgeRarity, GamificationPoint, PointType, UserBadge,
)

__all__ = [
    # User
    "User",
    "UserRole",
    # Library
    "Book",
    "BookCategory",
    "BookCondition",
    "BorrowRecord",
    "BorrowStatus",
    "ReadingProgress",
    # Hostel
    "HostelRoom",
    "RoomType",
    "MaintenanceStatus",
    "HostelAllocation",
    "AllocationStatus",
    "HostelServiceRequest",
    "ServiceRequestType",
    "ServiceRequestPriority",
    "ServiceRequestStatus",
    # Fees
    "Fee",
    "FeeType",
    "FeeStatus",
    "PaymentMethod",
    "PaymentTransaction",
    "TransactionStatus",
    "Currency",
    # Gamification
    "Badge",
    "BadgeCategory",
    "BadgeRarity",
    "GamificationPoint",
    "PointType",
    "UserBadge",
]
