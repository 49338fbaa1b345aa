# feeding_tracker/conftest.py
"""테스트 공용 픽스처"""

import pytest
import pytest_asyncio

from feeding_tracker.fakes import FakeAccountProvider, FakeFirestore, SteppingClock, ZONE_NAME
from feeding_tracker.services.history_manager import HistoryManager
from feeding_tracker.services.sync_gateway import SyncGateway


@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def account_provider(fake_db):
    return FakeAccountProvider(fake_db)


@pytest.fixture
def gateway(account_provider):
    return SyncGateway(account_provider, zone_name=ZONE_NAME, share_title='Dog Feeding Records')


@pytest_asyncio.fixture
async def zone(gateway):
    """계정 확인과 공유 존 준비를 마친 상태의 존 핸들."""
    await gateway.check_account_status()
    return await gateway.ensure_shared_zone()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def manager(gateway, clock):
    return HistoryManager(gateway, history_limit=5, refresh_interval=30.0, clock=clock)


@pytest.fixture
def app(account_provider, tmp_path):
    from feeding_tracker import create_app

    flask_app = create_app('testing', account_provider=account_provider, config_overrides={
        'PREFERENCES_PATH': str(tmp_path / 'preferences.json'),
    })
    yield flask_app
    flask_app.services['sync_loop'].stop()


@pytest.fixture
def client(app):
    return app.test_client()
