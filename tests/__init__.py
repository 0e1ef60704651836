"""
envsnap Test Suite.

This package contains:
- unit/: Unit tests (fakes and the in-memory object store)
- integration/: Integration tests (real git repositories, in-memory object store)
"""
