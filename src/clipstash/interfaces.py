"""Collaborators the capture engine consumes.

The OS clipboard, the ignore list and the sensitive-format markers are all
provided from outside; :mod:`clipstash.pasteboard` has the macOS
implementation and the tests use fakes.
"""

from typing import Protocol

from clipstash.models import IgnoredApp, SourceApp


class ClipboardSnapshotProvider(Protocol):
    def change_count(self) -> int: ...

    def available_formats(self) -> list[str]: ...

    def read(self, fmt: str) -> bytes | None: ...

    def source_application(self) -> SourceApp | None: ...


class ClipboardWriter(Protocol):
    def write(self, data: bytes, fmt: str) -> None: ...


class IgnoreListProvider(Protocol):
    def ignored_apps(self) -> list[IgnoredApp]: ...


class SensitiveFormatProvider(Protocol):
    def sensitive_formats(self) -> frozenset[str]: ...
