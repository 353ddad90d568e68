import re
import uuid
from typing import Dict, Optional, Union

from cfnflux.constants import DEFAULT_ENCODING

REGEX_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]+")


def to_str(obj: Union[str, bytes], encoding: str = DEFAULT_ENCODING, errors="strict") -> str:
    """If ``obj`` is an instance of ``binary_type``, return
    ``obj.decode(encoding, errors)``, otherwise return ``obj``"""
    return obj.decode(encoding, errors) if isinstance(obj, bytes) else obj


def to_bytes(obj: Union[str, bytes], encoding: str = DEFAULT_ENCODING, errors="strict") -> bytes:
    """If ``obj`` is an instance of ``text_type``, return
    ``obj.encode(encoding, errors)``, otherwise return ``obj``"""
    return obj.encode(encoding, errors) if isinstance(obj, str) else obj


def long_uid() -> str:
    return str(uuid.uuid4())


def replace_non_alphanumeric(value: str, replacement: str = "-") -> str:
    """Replaces every run of characters outside ``[a-zA-Z0-9]`` with ``replacement``."""
    return REGEX_NON_ALPHANUMERIC.sub(replacement, value)


def parse_key_value_pairs(value: Optional[str]) -> Dict[str, str]:
    """
    Parses a comma-separated list of ``key=value`` pairs, e.g., ``team=infra,env=prod``.

    :param value: the string to parse, may be empty or None
    :return: the pairs in the order of their appearance
    :raises ValueError: if an entry does not contain a ``=``
    """
    result = {}
    for entry in (value or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, val = entry.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"invalid key=value pair: {entry!r}")
        result[key.strip()] = val.strip()
    return result
