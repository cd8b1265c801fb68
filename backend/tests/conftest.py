import os, sys, pytest
# Ensure the backend directory is on path so 'workshop' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from workshop import create_app, get_db
from workshop.models.user import Base
# Import all model modules to ensure tables are registered before create_all
import workshop.models.client  # noqa: F401
import workshop.models.mechanic  # noqa: F401
import workshop.models.quote  # noqa: F401
import workshop.models.work_order  # noqa: F401
import workshop.models.audit  # noqa: F401

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
    'REDIS_URL': '',
    'MAIL_SUPPRESS_SEND': True,
    'EMAIL_MAX_RETRIES': 3,
    'EMAIL_RETRY_DELAYS': [0, 0, 0],
    'PUBLIC_BASE_URL': 'http://workshop.test',
    'WORKSHOP_NAME': 'Taller Test',
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app(TEST_CONFIG)
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()


@pytest.fixture()
def outbox(app_context):
    box = app_context.extensions.setdefault('mail_outbox', [])
    box.clear()
    yield box
    box.clear()
