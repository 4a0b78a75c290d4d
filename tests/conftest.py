import pytest

from n3core.dsl.registry import LayerRegistry, default_registry
from n3core.dsl.stdlib import install_standard_library
from n3core.utils.logger import reset_logger

from dsl_helpers import lenet


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: tests that are slow to run"
    )
    config.addinivalue_line(
        "markers", "e2e: tests that compile a whole model"
    )


@pytest.fixture(autouse=True)
def _fresh_logger():
    yield
    reset_logger()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def open_registry():
    """A writable registry preloaded with the standard library."""
    return install_standard_library(LayerRegistry())


@pytest.fixture
def lenet_program():
    return lenet()
