import mongomock
import pytest

try:
    from dotenv import load_dotenv
    from pathlib import Path

    # Load test-time environment variables (e.g. PYDMONGO_MONGO_URI)
    load_dotenv(Path(__file__).with_name(".env"), override=True)
except Exception:
    # It is safe to run tests without a .env; every test runs against
    # an in-memory mongomock client.
    pass

# Register shared fixtures from the `tests/fixtures` package.
# - models: documents shared by most tests (Item, Person, Message, ...).
pytest_plugins = [
    "tests.fixtures.models",
]


@pytest.fixture(scope="function", autouse=True)
def mock_connection():
    """
    Install a fresh in-memory mongomock client and a test database
    name as process defaults, restoring the previous ones afterwards.
    Appended extension / inclusion bundles are forgotten as well.
    """
    from pydmongo import config
    from pydmongo.registry import DOCUMENTS, EMBEDDED_DOCUMENTS

    previous_connection = config._connection
    previous_database_name = config.database_name()
    previous_logger = config.logger()

    client = mongomock.MongoClient()
    config.set_connection(client)
    config.set_database_name("pydmongo_test")
    yield client

    client.close()
    config.set_connection(previous_connection)
    config.set_database_name(previous_database_name)
    config.set_logger(previous_logger)
    DOCUMENTS.clear_bundles()
    EMBEDDED_DOCUMENTS.clear_bundles()
