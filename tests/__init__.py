"""Coach Learning Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - compliance/: Consent gate, consent manager, consent audit log
  - learning/: Reward, loop, policy weights, stats, nightly batch, config
  - metrics/: Metric snapshots and the SQLite metrics provider
  - storage/: SQLite and in-memory repositories
- integration/: HTTP API tests against SQLite stores

Running tests:
    # All tests
    uv run pytest

    # Specific area
    uv run pytest tests/unit/learning/

    # With coverage
    uv run pytest --cov=coach --cov-report=term-missing
"""
