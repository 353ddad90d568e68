import pytest

from cfnflux import config
from cfnflux.events import EventRecorder
from cfnflux.state.store import ObjectStore

from .fakes import FakeCloudFormation, FakeS3, new_source, new_stack

TEST_AWS_ACCESS_KEY_ID = "test"
TEST_AWS_SECRET_ACCESS_KEY = "test"
TEST_AWS_REGION_NAME = "us-east-1"


@pytest.fixture(autouse=True)
def set_boto_test_credentials_and_region(monkeypatch):
    """
    Automatically sets the default credentials and region for all unit tests.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", TEST_AWS_ACCESS_KEY_ID)
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", TEST_AWS_SECRET_ACCESS_KEY)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_AWS_REGION_NAME)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.setattr(config, "AWS_REGION", None)
    monkeypatch.setattr(config, "AWS_ENDPOINT_URL", None)


@pytest.fixture
def store():
    return ObjectStore()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def cfn():
    return FakeCloudFormation()


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def stack_with_source(store):
    """Stores a stack and the GitRepository it references, and returns the stored stack."""

    def _create(name: str = "my-stack", revision: str = "main@sha1:abc123", **kwargs):
        store.apply(new_source("my-repo", revision=revision))
        return store.apply(new_stack(name, **kwargs))

    return _create
