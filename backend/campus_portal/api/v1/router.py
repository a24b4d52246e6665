from fastapi import APIRouter
from campus_portal.api.v1.endpoints import auth, library, hostel, fees, gamification, health

api_router = APIRouter()

# Liveness/readiness probes
api_router.include_router(health.router)


# Simple health check endpoint for load balancers
@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint"""
    return {"status": "healthy", "service": "campus-portal"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(library.router)
api_router.include_router(hostel.router)
api_router.include_router(fees.router)
api_router.include_router(gamification.router)
