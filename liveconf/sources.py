"""
Raw source accessors: where a domain's bytes and version marker come from.

The engine only depends on the SourceAccessor protocol; FileSource backs it
with one file per domain in a config directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Protocol

from liveconf.domains import ALL_DOMAINS, Domain
from liveconf.errors import SourceMissing


class SourceAccessor(Protocol):
    """Raw source for every domain. Version markers must be comparable and grow on change."""

    def exists(self, domain: Domain) -> bool: ...

    def read(self, domain: Domain) -> bytes: ...

    def version_marker(self, domain: Domain) -> int: ...


class FileSource:
    """One file per domain (<stem>.<fmt>) inside a single directory; version is st_mtime_ns."""

    def __init__(self, directory: str | Path, fmt: str = "json", domains: Iterable[Domain] = ALL_DOMAINS):
        self.directory = Path(directory)
        self.fmt = fmt
        self.domains = tuple(domains)
        self._by_name = {d.filename(fmt): d for d in self.domains}

    @property
    def location(self) -> Path:
        """Directory the push watcher registers on."""
        return self.directory

    def path(self, domain: Domain) -> Path:
        return self.directory / domain.filename(self.fmt)

    def domain_for(self, name: str) -> Domain | None:
        """Map a changed entry's file name back to its domain; None for files we do not own."""
        return self._by_name.get(os.path.basename(name))

    def exists(self, domain: Domain) -> bool:
        return self.path(domain).is_file()

    def read(self, domain: Domain) -> bytes:
        path = self.path(domain)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise SourceMissing(domain, f"config file not found: {path}") from None
        except OSError as e:
            raise SourceMissing(domain, f"cannot read {path}: {e}") from e

    def version_marker(self, domain: Domain) -> int:
        path = self.path(domain)
        try:
            return path.stat().st_mtime_ns
        except FileNotFoundError:
            raise SourceMissing(domain, f"config file not found: {path}") from None
        except OSError as e:
            raise SourceMissing(domain, f"cannot stat {path}: {e}") from e
