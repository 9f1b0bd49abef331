"""Test suite for the preflight call-quality test.

Organized into two categories:

1. core/: Unit tests for core domain logic
   - No external dependencies, fast execution
   - Uses the in-memory transport fake

2. fakes/: Port implementations for testing
   - FakeVoiceTransport and FakeCallSession
   - Used by core unit tests
"""
