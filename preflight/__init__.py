"""Preflight call-quality diagnostic for real-time voice clients."""
