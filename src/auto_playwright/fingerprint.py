# fingerprint.py
# SHA-256 cache keys for tasks.
#
# Guarantees: the same (task, cache name) pair always produces the same key,
# across processes and platforms. The key is computed over the task text as
# the caller wrote it, before any @{key} parameter substitution.
#
# stdlib only, zero external dependencies.

import hashlib
import re


def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def fingerprint(task: str, discriminator: str | None = None) -> str:
    """
    Hex digest of the task text followed by the optional discriminator.

    An empty task is valid input. For a fixed task, distinct discriminators
    always yield distinct keys.
    """
    return _sha256(task + (discriminator or ""))


def cache_file_name(fingerprint_: str, cache_name: str | None = None) -> str:
    """File name for a cache entry: the caller's name with whitespace replaced, else the key."""
    if cache_name:
        return re.sub(r"\s", "_", cache_name) + ".json"
    return fingerprint_ + ".json"
