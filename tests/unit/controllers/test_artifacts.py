import hashlib
import io
import tarfile

import pytest
import requests

from cfnflux.api.sources import Artifact
from cfnflux.controllers.artifacts import ArtifactError, ArtifactLoader

from ..fakes import new_stack

TEMPLATE = b"AWSTemplateFormatVersion: '2010-09-09'\nResources: {}\n"


def _tarball(files: dict, directories=()) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name in directories:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def _digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


@pytest.fixture
def loader():
    return ArtifactLoader(retries=0, timeout=5, localhost="")


@pytest.fixture
def serve_artifact(httpserver):
    def _serve(data: bytes, digest: str = None, path: str = "/latest.tar.gz") -> Artifact:
        httpserver.expect_request(path).respond_with_data(data, content_type="application/gzip")
        return Artifact(url=httpserver.url_for(path), revision="main@sha1:abc", digest=digest or _digest(data))

    return _serve


def test_load_template(loader, serve_artifact):
    artifact = serve_artifact(_tarball({"template.yaml": TEMPLATE}))

    assert loader.load_template(new_stack(), artifact) == TEMPLATE


def test_load_template_from_nested_path(loader, serve_artifact):
    artifact = serve_artifact(
        _tarball({"infra/vpc/stack.yaml": TEMPLATE, "template.yaml": b"other"}, directories=["infra"])
    )

    assert loader.load_template(new_stack(template_path="infra/vpc/stack.yaml"), artifact) == TEMPLATE
    assert loader.load_template(new_stack(template_path="./infra//vpc/stack.yaml"), artifact) == TEMPLATE


def test_corrupted_artifact_is_rejected(loader, serve_artifact):
    data = _tarball({"template.yaml": TEMPLATE})
    corrupted = bytearray(data)
    corrupted[len(corrupted) // 2] ^= 0x01
    artifact = serve_artifact(bytes(corrupted), digest=_digest(data))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "computed digest doesn't match" in str(e.value)


@pytest.mark.parametrize("digest", ["", "abc", "sha256", "md5:d41d8cd98f00b204e9800998ecf8427e", "sha256:xyz"])
def test_invalid_digest(loader, serve_artifact, digest):
    artifact = serve_artifact(_tarball({"template.yaml": TEMPLATE}))
    artifact.digest = digest

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "failed to verify artifact" in str(e.value)


def test_other_digest_algorithms(loader, serve_artifact):
    data = _tarball({"template.yaml": TEMPLATE})
    artifact = serve_artifact(data, digest=f"sha512:{hashlib.sha512(data).hexdigest()}")

    assert loader.load_template(new_stack(), artifact) == TEMPLATE


@pytest.mark.parametrize(
    "template_path", ["../../usr/bin/ls", "/etc/passwd", "infra/../../template.yaml", ".."]
)
def test_unsafe_template_path(loader, serve_artifact, template_path):
    artifact = serve_artifact(_tarball({"template.yaml": TEMPLATE}))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(template_path=template_path), artifact)
    assert f"template path '{template_path}'" in str(e.value)


def test_directory_template_path(loader, serve_artifact):
    artifact = serve_artifact(_tarball({"infra/stack.yaml": TEMPLATE}, directories=["infra"]))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(template_path="infra"), artifact)
    assert str(e.value) == "template path 'infra' is a directory"


def test_missing_template(loader, serve_artifact):
    artifact = serve_artifact(_tarball({"other.yaml": TEMPLATE}))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "unable to read template file 'template.yaml'" in str(e.value)


def test_archive_escaping_the_extraction_directory(loader, serve_artifact):
    artifact = serve_artifact(_tarball({"../evil.yaml": TEMPLATE}))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "failed to untar artifact" in str(e.value)


def test_invalid_archive(loader, serve_artifact):
    artifact = serve_artifact(b"not a tarball")

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "failed to untar artifact" in str(e.value)


def test_non_200_response(loader, httpserver):
    httpserver.expect_request("/latest.tar.gz").respond_with_data("gone", status=404)
    artifact = Artifact(url=httpserver.url_for("/latest.tar.gz"), revision="rev", digest=_digest(b""))

    with pytest.raises(ArtifactError) as e:
        loader.load_template(new_stack(), artifact)
    assert "status: 404" in str(e.value)


def test_localhost_override(serve_artifact, httpserver):
    data = _tarball({"template.yaml": TEMPLATE})
    served = serve_artifact(data)
    artifact = Artifact(
        url="http://source-controller.flux-system.svc.cluster.local./latest.tar.gz",
        revision=served.revision,
        digest=served.digest,
    )
    loader = ArtifactLoader(retries=0, timeout=5, localhost=f"{httpserver.host}:{httpserver.port}")

    assert loader.load_template(new_stack(), artifact) == TEMPLATE


def test_temporary_directory_is_removed(loader, serve_artifact, monkeypatch, tmp_path):
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path))
    artifact = serve_artifact(_tarball({"template.yaml": TEMPLATE}))

    loader.load_template(new_stack(), artifact)
    with pytest.raises(ArtifactError):
        loader.load_template(new_stack(template_path="missing.yaml"), artifact)

    assert list(tmp_path.iterdir()) == []


def test_custom_session(serve_artifact):
    artifact = serve_artifact(_tarball({"template.yaml": TEMPLATE}))
    session = requests.Session()

    assert ArtifactLoader(session=session, localhost="").load_template(new_stack(), artifact) == TEMPLATE
