"""FAQ Bot API Service.

This package contains the FastAPI application and the query pipeline
behind it.

Main components:
- main.py: FastAPI application with lifespan and health endpoints
- models.py: Pydantic models for requests and responses
- orchestrators/routing_engine.py: Three-tier confidence routing
- llm/: Resilient answer synthesis (circuit breaker, usage cap, gates)
- tools/: Query embedding and FAQ similarity search
- analytics.py: Query and feedback logging
"""

# Avoid importing heavy modules (e.g., FastAPI app) at package import time.
# Intentionally do not re-export runtime objects here.
__all__ = []
