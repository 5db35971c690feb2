"""
Security services: rate limiting and the audit trail.
"""

from .audit import AuditAction, AuditComponent, AuditLogger, audit_logger
from .rate_limiter import RateLimiter, RateLimitResult, RateLimitSubject

__all__ = [
    # Audit logging
    "AuditLogger",
    "AuditAction",
    "AuditComponent",
    "audit_logger",

    # Rate limiting
    "RateLimiter",
    "RateLimitResult",
    "RateLimitSubject",
]
