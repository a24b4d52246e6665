from campus_portal.services.library_service import LibraryService, library_service
from campus_portal.services.hostel_service import HostelService, hostel_service
from campus_portal.services.fee_service import FeeService, fee_service
from campus_portal.services.gamification_service import GamificationService, gamification_service
from campus_portal.services.reconciliation import ReconciliationService, reconciliation_service

__all__ = [
    "LibraryService",
    "library_service",
    "HostelService",
    "hostel_service",
    "FeeService",
    "fee_service",
    "GamificationService",
    "gamification_service",
    "ReconciliationService",
    "reconciliation_service",
]
