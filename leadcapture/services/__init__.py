# leadcapture/services/__init__.py
"""
Business logic services organized by domain functionality.
"""

from leadcapture.services.lead_store import LeadFilter, LeadPage, LeadStore
from leadcapture.services.rate_limiter import (
    RateLimitDecision,
    RateLimitFailurePolicy,
    RateLimiter,
)
from leadcapture.services.retrieval import RetrievalHandler
from leadcapture.services.spam import SpamFilter, SpamVerdict
from leadcapture.services.submission import RequestContext, SubmissionHandler
from leadcapture.services.validation import SanitizedSubmission, validate_submission

__all__ = [
    # Storage
    "LeadFilter",
    "LeadPage",
    "LeadStore",
    # Rate limiting
    "RateLimitDecision",
    "RateLimitFailurePolicy",
    "RateLimiter",
    # Screening
    "SanitizedSubmission",
    "SpamFilter",
    "SpamVerdict",
    "validate_submission",
    # Handlers
    "RequestContext",
    "RetrievalHandler",
    "SubmissionHandler",
]
