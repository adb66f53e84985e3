import pytest

from tests.factories import FakeServer
from uploader.upload.models import GroupingKey


@pytest.fixture()
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def grouping_key() -> GroupingKey:
    return GroupingKey(subject_name="Physics", paper_code="PHY-101")
