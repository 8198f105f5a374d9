"""Test that the project setup is working correctly."""

import whale_watcher


def test_version() -> None:
    """Test that version is defined."""
    assert whale_watcher.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from whale_watcher import adapters
    from whale_watcher import aggregator
    from whale_watcher import alerter
    from whale_watcher import providers
    from whale_watcher import storage

    # Just verify imports work
    assert adapters is not None
    assert aggregator is not None
    assert alerter is not None
    assert providers is not None
    assert storage is not None
