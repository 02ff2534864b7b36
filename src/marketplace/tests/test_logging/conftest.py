import pytest

from marketplace.core.logging.builder import setup_logging, stop_queue_logging
from marketplace.tests.conftest import make_test_settings


@pytest.fixture(autouse=True)
def restore_logging():
    """Logging tests reconfigure the root logger; put the suite's configuration back."""
    yield
    stop_queue_logging()
    setup_logging(make_test_settings())
