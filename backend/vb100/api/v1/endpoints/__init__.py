# API endpoints
from . import health, results

__all__ = ["health", "results"]
