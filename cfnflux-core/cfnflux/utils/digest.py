import hashlib
from typing import NamedTuple

# algorithms accepted in artifact digests, mapped to their hashlib names
SUPPORTED_ALGORITHMS = {
    "sha256": "sha256",
    "sha384": "sha384",
    "sha512": "sha512",
    "sha1": "sha1",
}


class InvalidDigestError(ValueError):
    pass


class DigestMismatchError(ValueError):
    def __init__(self, expected: "Digest", actual: str):
        super().__init__(f"computed digest doesn't match '{expected}', got '{expected.algorithm}:{actual}'")
        self.expected = expected
        self.actual = actual


class Digest(NamedTuple):
    algorithm: str
    hex: str

    def __str__(self):
        return f"{self.algorithm}:{self.hex}"

    @classmethod
    def parse(cls, value: str) -> "Digest":
        """Parses a digest in the ``<algorithm>:<hex>`` notation, e.g., ``sha256:9f86d0...``."""
        algorithm, sep, encoded = (value or "").strip().partition(":")
        if not sep or not algorithm or not encoded:
            raise InvalidDigestError(f"invalid digest format: '{value}'")
        algorithm = algorithm.lower()
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise InvalidDigestError(f"unsupported digest algorithm '{algorithm}'")
        try:
            bytes.fromhex(encoded)
        except ValueError:
            raise InvalidDigestError(f"invalid digest format: '{value}'")
        return cls(algorithm, encoded.lower())

    def verifier(self) -> "Verifier":
        return Verifier(self)


class Verifier:
    """Incrementally hashes data and compares the result with an expected digest."""

    def __init__(self, expected: Digest):
        self.expected = expected
        self._hash = hashlib.new(SUPPORTED_ALGORITHMS[expected.algorithm])

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def verified(self) -> bool:
        return self.hexdigest() == self.expected.hex

    def verify(self) -> None:
        """:raises DigestMismatchError: if the hashed data does not match the expected digest"""
        if not self.verified():
            raise DigestMismatchError(self.expected, self.hexdigest())
