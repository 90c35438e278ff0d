"""FAQ bot shared libraries.

This package contains reusable components:
- common: Configuration and background task dispatch
- models: Pydantic models shared across the pipeline
- memory: Conversation store, context rewriter and Redis backing
- caching: Redis client management
- supabase: PostgREST client and query log helpers
"""
