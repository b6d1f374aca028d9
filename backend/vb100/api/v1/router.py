from fastapi import APIRouter
from vb100.api.v1.endpoints import health, results

api_router = APIRouter()

# Health probes (use /health/ready for load balancers)
api_router.include_router(health.router)


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint"""
    return {"status": "healthy", "service": "vb100-results"}


api_router.include_router(results.router)
