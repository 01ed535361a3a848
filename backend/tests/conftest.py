import os, sys, pytest
# Ensure backend directory is on path so 'storerate' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from storerate import create_app, get_db
from storerate.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import storerate.models.store  # noqa: F401
import storerate.models.rating  # noqa: F401
import storerate.models.audit  # noqa: F401

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-that-is-long-enough-for-hs256',
    'AUDIT_ASYNC': False,
    'EXPOSE_ERROR_DETAIL': False,
    'TESTING': True,
}


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app(dict(TEST_CONFIG))
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app
    app.extensions['storerate.audit'].shutdown()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance
