# API endpoints
from . import auth, library, hostel, fees, gamification, health

__all__ = ["auth", "library", "hostel", "fees", "gamification", "health"]
