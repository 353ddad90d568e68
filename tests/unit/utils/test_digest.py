import hashlib

import pytest

from cfnflux.utils.digest import Digest, DigestMismatchError, InvalidDigestError


class TestDigest:
    def test_parse(self):
        digest = Digest.parse("sha256:" + "ab" * 32)
        assert digest.algorithm == "sha256"
        assert digest.hex == "ab" * 32
        assert str(digest) == "sha256:" + "ab" * 32

    def test_parse_normalizes_case(self):
        assert Digest.parse("SHA512:ABCD") == Digest("sha512", "abcd")

    @pytest.mark.parametrize(
        "value", [None, "", "sha256", "sha256:", ":abcd", "md5:abcd", "sha256:xyz", "sha256:abc"]
    )
    def test_parse_invalid(self, value):
        with pytest.raises(InvalidDigestError):
            Digest.parse(value)

    @pytest.mark.parametrize("algorithm", ["sha1", "sha256", "sha384", "sha512"])
    def test_verify(self, algorithm):
        data = b"some artifact content"
        digest = Digest.parse(f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}")

        verifier = digest.verifier()
        verifier.update(data[:4])
        verifier.update(data[4:])

        assert verifier.verified()
        verifier.verify()

    def test_verify_mismatch(self):
        digest = Digest.parse(f"sha256:{hashlib.sha256(b'expected').hexdigest()}")
        verifier = digest.verifier()
        verifier.update(b"actual")

        assert not verifier.verified()
        with pytest.raises(DigestMismatchError) as e:
            verifier.verify()
        assert e.value.actual == hashlib.sha256(b"actual").hexdigest()
        assert "computed digest doesn't match" in str(e.value)
