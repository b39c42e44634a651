import pytest

from fakes import FakeMarketplace, RecordingSleep


@pytest.fixture()
def market() -> FakeMarketplace:
    return FakeMarketplace()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()
