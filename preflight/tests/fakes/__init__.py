"""Fake implementations of core ports for testing.

These in-memory implementations allow the preflight state machine to
be tested without a real voice transport:

- FakeVoiceTransport: Records connect() calls and drives the listener
- FakeCallSession: Records teardown
"""

from .transport import FakeCallSession, FakeVoiceTransport, make_sample

__all__ = [
    "FakeCallSession",
    "FakeVoiceTransport",
    "make_sample",
]
