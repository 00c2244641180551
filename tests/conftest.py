"""Pytest configuration and shared fixtures."""

import pytest

# The netclock testing plugin is registered via a ``pytest11`` entry
# point (pyproject.toml) for external consumers.  In our own test
# suite we disable it (``-p no:netclock``) and load explicitly here
# instead: conftest loading happens in ``pytest_load_initial_conftests``,
# after ``pytest-cov`` has started tracing, so netclock imports are measured.
pytest_plugins = ["netclock.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (real event loop, many peers)"
    )
