import pytest
import fakeredis

from TokenSale.sale_server import db


@pytest.fixture(autouse=True)
def _inject_client():
    """Inject a fakeredis client into the db module so the API uses it."""
    r = fakeredis.FakeRedis()
    db.client = r
    yield r
    r.flushdb()
    r.close()
    db.client = None
