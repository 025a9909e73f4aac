"""Small HTTP-related constants shared across North.

Kept separate so the retry classifier and provider error mapping agree.
"""

from __future__ import annotations

# 529 is Anthropic's "overloaded" status.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {408, 409, 429, 500, 502, 503, 504, 529}
)
