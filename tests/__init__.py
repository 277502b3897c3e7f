# kxchannel Test Suite
"""
Comprehensive test suite including:
- Unit tests
- Integration tests (socket pairs and loopback TCP)
- Security tests (tampering, malformed frames)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
