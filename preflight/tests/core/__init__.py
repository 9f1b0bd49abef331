"""Unit tests for core domain logic.

These tests exercise core test logic without a real transport.
The voice transport is replaced with the in-memory fake from tests/fakes/.
"""
