import pytest

from cfnflux.clients.cloudformation.changeset import (
    ChangeSetHandle,
    change_set_name,
    extract_change_set_name,
)
from cfnflux.clients.cloudformation.stack import WorkingStack

ARN = "arn:aws:cloudformation:us-west-2:123456789012:changeSet/flux-1-main-sha1-abc/7c2d5e1b-0000-4d43-9d1b-9e5a"


class TestChangeSetName:
    def test_name_is_deterministic(self):
        assert change_set_name(1, "main@sha1:abc") == change_set_name(1, "main@sha1:abc")
        assert change_set_name(1, "main@sha1:abc") != change_set_name(2, "main@sha1:abc")
        assert change_set_name(1, "main@sha1:abc") != change_set_name(1, "main@sha1:def")

    @pytest.mark.parametrize(
        "generation,revision,expected",
        [
            (1, "main@sha1:abc123", "flux-1-main-sha1-abc123"),
            (3, "main/1a2b3c", "flux-3-main-1a2b3c"),
            (2, "v1.2.3@sha256:ff", "flux-2-v1-2-3-sha256-ff"),
            (7, "sha256:aa__bb", "flux-7-sha256-aa-bb"),
            (1, "", "flux-1-"),
        ],
    )
    def test_name_format(self, generation, revision, expected):
        assert change_set_name(generation, revision) == expected

    def test_name_is_truncated(self):
        name = change_set_name(12, "main@sha256:" + "a" * 200)

        assert len(name) == 128
        assert name.startswith("flux-12-main-sha256-aaa")


class TestChangeSetHandle:
    def test_extract_name(self):
        assert extract_change_set_name(ARN) == "flux-1-main-sha1-abc"
        assert extract_change_set_name("flux-1-main") == "flux-1-main"
        assert extract_change_set_name(None) == ""

    def test_from_identifier(self):
        handle = ChangeSetHandle.from_identifier(ARN)
        assert handle.name == "flux-1-main-sha1-abc"
        assert handle.arn == ARN
        assert handle.identifier == ARN
        assert str(handle) == ARN

        handle = ChangeSetHandle.from_identifier("flux-1-main")
        assert handle.arn is None
        assert handle.identifier == "flux-1-main"

    def test_resolve_reuses_matching_attempt(self):
        handle = ChangeSetHandle.resolve(1, "main@sha1:abc", ARN)

        assert handle.arn == ARN

    def test_resolve_discards_stale_attempt(self):
        assert ChangeSetHandle.resolve(2, "main@sha1:abc", ARN) == ChangeSetHandle("flux-2-main-sha1-abc")
        assert ChangeSetHandle.resolve(1, "main@sha1:def", ARN) == ChangeSetHandle("flux-1-main-sha1-def")
        assert ChangeSetHandle.resolve(1, "main@sha1:abc", None) == ChangeSetHandle("flux-1-main-sha1-abc")

    def test_with_arn(self):
        handle = ChangeSetHandle("flux-1-main-sha1-abc")

        assert handle.with_arn(None) is handle
        assert handle.with_arn(ARN) == ChangeSetHandle("flux-1-main-sha1-abc", ARN)
        assert handle.arn is None

    def test_working_stack_desired_change_set(self):
        stack = WorkingStack(name="my-stack", generation=1, source_revision="main@sha1:abc")
        assert stack.desired_change_set() == ChangeSetHandle("flux-1-main-sha1-abc")

        stack.change_set = ChangeSetHandle.from_identifier(ARN)
        assert stack.desired_change_set().identifier == ARN
