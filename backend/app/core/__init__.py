# app/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- db: Database configuration and connection management
- exceptions: Domain error taxonomy shared by services and routers
- retry: Backoff policy and retry wrapper for provider calls
- reward_status: Process-scoped reward generation progress registry
- security: Access token decoding
"""
