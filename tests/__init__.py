"""
APItize versioning test suite.

This package contains:
- unit/: Unit tests (in-memory stores, fake AWS clients)
- integration/: Service and HTTP API flows over in-memory backends
"""
