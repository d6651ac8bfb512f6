from __future__ import annotations

import logging as py_logging
from collections.abc import Iterator
from pathlib import Path

import pytest

_REGRESSION_TEST_FILES = {
    "test_binder.py",
    "test_cache.py",
}


@pytest.fixture(autouse=True)
def _reset_ktk_logger() -> Iterator[None]:
    yield
    logger = py_logging.getLogger("ktk")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(py_logging.NOTSET)
    logger.propagate = True


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _REGRESSION_TEST_FILES:
            item.add_marker(pytest.mark.critical_regression)
