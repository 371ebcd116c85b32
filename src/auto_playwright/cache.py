# cache.py
# File-backed store of recorded traces.
#
# One JSON file per (cache directory, cache name or fingerprint). A file maps
# fingerprint -> {"fingerprint", "trace"}; a trace is a list of turns, each a
# list of {"name", "arguments"} with `arguments` a JSON-encoded string.
#
# Writes are read-merge-write: saving an entry never drops its siblings.
# The merged file replaces the old one through a rename, never in place.
# Nothing is locked. Two processes saving to the same file race and the last
# writer wins.

import json
import os
import re
import tempfile
from pathlib import Path

import pydantic

from auto_playwright.errors import CacheCorruptionError, CachePathMissingError, ConfigurationError
from auto_playwright.fingerprint import cache_file_name
from auto_playwright.models import CacheEntry, CacheFile, Trace

_PATH_SEPARATORS = ("/", "\\")
_PLACEHOLDER = re.compile(r"@\{([^{}]+)\}")


def _escape_for_arguments(value: str) -> str:
    """
    Encode `value` the way it appears inside a persisted `arguments` field.

    Arguments are a JSON string inside a JSON document, so a literal is
    escaped twice. Plain text passes through unchanged.
    """
    once = json.dumps(value, ensure_ascii=False)[1:-1]
    return json.dumps(once, ensure_ascii=False)[1:-1]


def unresolved_placeholders(trace: Trace) -> list[str]:
    """Placeholder keys still present in `trace` after substitution, in order of appearance."""
    keys: list[str] = []
    for turn in trace:
        for invocation in turn:
            for key in _PLACEHOLDER.findall(invocation.arguments):
                if key not in keys:
                    keys.append(key)
    return keys


def _write_atomic(file_path: Path, text: str) -> None:
    """Replace `file_path` in one step so a failed write leaves the old file intact."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(text)
        os.replace(tmp_name, file_path)
    except BaseException:
        os.unlink(tmp_name)
        raise


def substitute_parameters(raw: str, parameters: dict[str, str] | None) -> str:
    """
    Replace every `@{key}` in the raw cache text with the caller's value.

    Applied before the text is parsed, so a placeholder anywhere in the file
    is substituted, not only in known fields.
    """
    for key, value in (parameters or {}).items():
        raw = raw.replace(f"@{{{key}}}", _escape_for_arguments(value))
    return raw


class CacheStore:
    """
    Lookup and persistence of traces under one cache directory.

    The directory must already exist. It is checked on every call and never
    created.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def resolve(self, fingerprint: str, cache_name: str | None = None) -> Path:
        """
        Path of the cache file for `fingerprint`, always directly inside the
        cache directory.

        Raises CachePathMissingError when the directory is missing and
        ConfigurationError when `cache_name` names a path rather than a file.
        """
        if not self._path.is_dir():
            raise CachePathMissingError(f"Cache path {self._path} does not exist")
        if cache_name and any(sep in cache_name for sep in _PATH_SEPARATORS):
            raise ConfigurationError(f"Cache name {cache_name!r} must be a plain file name, not a path.")
        return self._path / cache_file_name(fingerprint, cache_name)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _parse(self, file_path: Path, raw: str) -> CacheFile:
        try:
            data = json.loads(raw)
            cache_file = CacheFile.model_validate(data)
        except (json.JSONDecodeError, pydantic.ValidationError) as exc:
            raise CacheCorruptionError(f"Cache file {file_path} is invalid: {exc}") from exc

        for key, entry in cache_file.root.items():
            if entry.fingerprint != key:
                raise CacheCorruptionError(
                    f"Cache file {file_path} stores fingerprint {entry.fingerprint!r} under key {key!r}."
                )
        return cache_file

    def lookup(
        self,
        fingerprint: str,
        cache_name: str | None = None,
        parameters: dict[str, str] | None = None,
    ) -> CacheEntry | None:
        """Return the entry for `fingerprint` with parameters substituted, or None on a miss."""
        file_path = self.resolve(fingerprint, cache_name)
        if not file_path.exists():
            return None

        raw = substitute_parameters(file_path.read_text(encoding="utf-8"), parameters)
        return self._parse(file_path, raw).root.get(fingerprint)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save(self, fingerprint: str, trace: Trace, cache_name: str | None = None) -> Path:
        """Set the entry for `fingerprint`, keeping every other entry in the file."""
        file_path = self.resolve(fingerprint, cache_name)

        data: dict = {}
        if file_path.exists():
            raw = file_path.read_text(encoding="utf-8")
            # Validate the shape, but merge into the raw mapping so sibling
            # entries are written back exactly as they were read.
            self._parse(file_path, raw)
            data = json.loads(raw)

        entry = CacheEntry(fingerprint=fingerprint, trace=trace)
        data[fingerprint] = entry.model_dump(mode="json")
        _write_atomic(file_path, json.dumps(data, indent=2, ensure_ascii=False))
        return file_path
