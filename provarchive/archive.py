"""Provider archives: tarballs of per-target libraries plus signed claims."""

from __future__ import annotations

import copy
import gzip
import hashlib
import io
import os
import tarfile
import zlib
from contextlib import ExitStack
from pathlib import Path, PurePosixPath

from provarchive.claims import Claims, ClaimsError

CLAIMS_JWT_FILE = "claims.jwt"
GZIP_MAGIC = b"\x1f\x8b"


class ArchiveError(Exception):
    """Raised when an archive cannot be read, verified or written."""


def hash_bytes(data) -> str:
    """Upper-case hexadecimal SHA-256 digest of data."""
    return hashlib.sha256(bytes(data)).hexdigest().upper()


def _generate_hashes(libraries: dict[str, bytes]) -> dict[str, str]:
    return {target: hash_bytes(lib) for target, lib in libraries.items()}


def _validate_hashes(libraries: dict[str, bytes], claims: Claims) -> None:
    if claims.metadata is None:
        raise ArchiveError("Embedded claims carry no provider metadata")
    file_hashes = claims.metadata.target_hashes
    for target, library in libraries.items():
        file_hash = file_hashes.get(target)
        if file_hash is None:
            raise ArchiveError(f"No hash recorded in claims for '{target}'")
        if file_hash != hash_bytes(library):
            raise ArchiveError(f"File hash and verify hash do not match for '{target}'")


def _read_entries(data: bytes):
    """Yield (target, bytes) for each file in the tar data."""
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as par:
            for member in par:
                if not member.isfile():
                    continue
                extracted = par.extractfile(member)
                content = extracted.read() if extracted is not None else b""
                yield PurePosixPath(member.name).stem, content
    except (tarfile.TarError, EOFError) as exc:
        raise ArchiveError(f"Invalid provider archive: {exc}") from exc


def _add_file(par: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    info.mtime = 0
    info.mode = 0o644
    par.addfile(info, io.BytesIO(content))


class ProviderArchive:
    """An archive of native libraries, one per target, with embedded signed claims.

    Claims are only available after the archive has been written or when it
    was loaded from existing bytes.
    """

    def __init__(self, capid, name, vendor, rev=None, ver=None):
        self.capid: str = capid
        self.name: str = name
        self.vendor: str = vendor
        self.rev: int | None = rev
        self.ver: str | None = ver
        self.libraries: dict[str, bytes] = {}
        self._claims: Claims | None = None

    def add_library(self, target, data) -> None:
        """Add (or replace) the library for a target."""
        self.libraries[target] = bytes(data)

    def targets(self) -> list[str]:
        """The architecture/OS targets in the archive."""
        return list(self.libraries)

    def target_bytes(self, target) -> bytes | None:
        """The library bytes for target, or None if absent."""
        return self.libraries.get(target)

    def claims(self) -> Claims | None:
        """A copy of the embedded claims, if any."""
        return copy.deepcopy(self._claims)

    @classmethod
    def try_load(cls, data) -> ProviderArchive:
        """Load archive bytes, verifying the claims and every library hash."""
        data = bytes(data)
        if len(data) < 2:
            raise ArchiveError("Not enough bytes to be a valid PAR file")
        if data[:2] == GZIP_MAGIC:
            try:
                data = gzip.decompress(data)
            except (OSError, EOFError, zlib.error) as exc:
                raise ArchiveError(f"Invalid compressed archive: {exc}") from exc

        claims: Claims | None = None
        libraries: dict[str, bytes] = {}
        for target, content in _read_entries(data):
            if target == "claims":
                try:
                    claims = Claims.decode(content.decode("utf-8"))
                except UnicodeDecodeError as exc:
                    raise ArchiveError("Embedded claims are not valid UTF-8") from exc
                except ClaimsError as exc:
                    raise ArchiveError(f"Embedded claims are invalid: {exc}") from exc
            else:
                libraries[target] = content

        if claims is None or not libraries:
            raise ArchiveError(
                "Not enough files found in provider archive. Is this a complete archive?"
            )
        if claims.metadata is None:
            raise ArchiveError("Embedded claims carry no provider metadata")

        _validate_hashes(libraries, claims)

        metadata = claims.metadata
        archive = cls(metadata.capid, claims.name, metadata.vendor, metadata.rev, metadata.ver)
        archive.libraries = libraries
        archive._claims = claims
        return archive

    def write(self, destination, issuer, subject, compress=False) -> Path:
        """Write the archive with freshly signed claims; return the path written.

        When compressing, ".gz" is appended unless the destination already ends with it.
        """
        path = os.fspath(destination)
        if compress and not path.endswith(".gz"):
            path = f"{path}.gz"

        claims = Claims.new(
            self.name,
            issuer.public_key(),
            subject.public_key(),
            self.capid,
            self.vendor,
            self.rev,
            self.ver,
            _generate_hashes(self.libraries),
        )
        try:
            token = claims.encode(issuer)
        except ClaimsError as exc:
            raise ArchiveError(f"Cannot sign claims: {exc}") from exc
        self._claims = claims

        with ExitStack() as stack:
            out = stack.enter_context(open(path, "wb"))
            if compress:
                out = stack.enter_context(
                    gzip.GzipFile(fileobj=out, mode="wb", compresslevel=9, mtime=0)
                )
            par = stack.enter_context(
                tarfile.open(fileobj=out, mode="w", format=tarfile.GNU_FORMAT)
            )
            _add_file(par, CLAIMS_JWT_FILE, token.encode("utf-8"))
            for target, library in self.libraries.items():
                _add_file(par, f"{target}.bin", library)
        return Path(path)