"""
Log bridge test suite.

This package contains:
- unit/: Unit tests (in-memory engine, mocked HTTP)
- integration/: Backup/restore round trips and the HTTP API against a fake remote store
"""
