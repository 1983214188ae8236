import gzip
import io
import tarfile

import pytest

from provarchive.archive import ArchiveError, ProviderArchive, hash_bytes
from provarchive.keys import KeyPair


@pytest.fixture
def issuer():
    return KeyPair.new_account()


@pytest.fixture
def subject():
    return KeyPair.new_service()


def _archive(rev, ver, libs):
    arch = ProviderArchive("wasmcloud:testing", "Testing", "wasmCloud", rev, ver)
    for target, data in libs.items():
        arch.add_library(target, data)
    return arch


def test_hash_bytes_known_values():
    assert hash_bytes(b"") == (
        "E3B0C44298FC1C149AFBF4C8996FB92427AE41E4649B934CA495991B7852B855"
    )
    assert hash_bytes(b"abc") == (
        "BA7816BF8F01CFEA414140DE5DAE2223B00361A396177A9CB410FF61F20015AD"
    )


def test_write_par(tmp_path, issuer, subject):
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    written = arch.write(tmp_path / "writetest.par", issuer, subject, False)
    assert written == tmp_path / "writetest.par"
    with tarfile.open(written) as par:
        assert sorted(par.getnames()) == ["aarch64-linux.bin", "claims.jwt"]


def test_error_on_no_providers(tmp_path, issuer, subject):
    arch = _archive(2, "0.0.2", {})
    path = arch.write(tmp_path / "shoulderr.par", issuer, subject, False)
    with pytest.raises(ArchiveError):
        ProviderArchive.try_load(path.read_bytes())


def test_round_trip(tmp_path, issuer, subject):
    arch = _archive(
        3,
        "0.0.3",
        {"aarch64-linux": b"blahblah", "x86_64-linux": b"bloobloo", "x86_64-macos": b"blarblar"},
    )
    path = arch.write(tmp_path / "firstarchive.par", issuer, subject, False)

    arch2 = ProviderArchive.try_load(path.read_bytes())
    assert arch.capid == arch2.capid
    assert arch.libraries["aarch64-linux"] == arch2.libraries["aarch64-linux"]
    assert arch.claims().subject == subject.public_key()

    arch2.add_library("mips-linux", b"bluhbluh")
    path2 = arch2.write(tmp_path / "secondarchive.par", issuer, subject, False)

    arch3 = ProviderArchive.try_load(path2.read_bytes())
    assert arch3.capid == arch2.capid
    assert arch3.libraries["aarch64-linux"] == arch2.libraries["aarch64-linux"]
    assert arch3.claims().subject == subject.public_key()
    assert len(arch3.targets()) == 4
    assert arch3.target_bytes("mips-linux") == b"bluhbluh"


def test_compression_roundtrip(tmp_path, issuer, subject):
    arch = _archive(
        4,
        "0.0.4",
        {
            "aarch64-linux": b"heylookimaraspberrypi",
            "x86_64-linux": b"system76",
            "x86_64-macos": b"16inchmacbookpro",
        },
    )
    path = arch.write(tmp_path / "computers.par", issuer, subject, False)
    compressed = gzip.compress(path.read_bytes(), compresslevel=9)
    gz_path = tmp_path / "computers.par.gz"
    gz_path.write_bytes(compressed)

    arch2 = ProviderArchive.try_load(gz_path.read_bytes())
    assert arch.capid == arch2.capid
    assert arch.libraries["aarch64-linux"] == arch2.libraries["aarch64-linux"]
    assert arch.claims().subject == subject.public_key()


def test_valid_decompression(tmp_path, issuer, subject):
    arch = _archive(
        5,
        "0.0.5",
        {"aarch64-linux": b"cool-linux", "x86_64-linux": b"linux", "x86_64-macos": b"macos"},
    )
    path = arch.write(tmp_path / "operatingsystem.par", issuer, subject, False)
    original = path.read_bytes()
    gz_path = tmp_path / "operatingsystem.par.gz"
    gz_path.write_bytes(gzip.compress(original, compresslevel=9))
    assert gzip.decompress(gz_path.read_bytes()) == original


def test_valid_write_compressed(tmp_path, issuer, subject):
    libs = {"x86_64-linux": b"linux", "arm-macos": b"macos", "mips64-freebsd": b"freebsd"}
    arch = _archive(6, "0.0.6", libs)
    written = arch.write(tmp_path / "multi-os.par", issuer, subject, True)
    assert written == tmp_path / "multi-os.par.gz"
    assert not (tmp_path / "multi-os.par").exists()

    data = written.read_bytes()
    assert data[:2] == b"\x1f\x8b"
    arch2 = ProviderArchive.try_load(data)
    for target in libs:
        assert arch.libraries[target] == arch2.libraries[target]
    assert arch.claims() == arch2.claims()


def test_valid_write_compressed_with_suffix(tmp_path, issuer, subject):
    libs = {"x86_64-linux": b"linux", "arm-macos": b"macos", "mips64-freebsd": b"freebsd"}
    arch = _archive(7, "0.0.7", libs)
    written = arch.write(tmp_path / "suffix-test.par.gz", issuer, subject, True)
    assert written == tmp_path / "suffix-test.par.gz"
    assert not (tmp_path / "suffix-test.par.gz.gz").exists()

    arch2 = ProviderArchive.try_load(written.read_bytes())
    for target in libs:
        assert arch.libraries[target] == arch2.libraries[target]
    assert arch.claims() == arch2.claims()


def test_preserved_claims(tmp_path, issuer, subject):
    capid, name, vendor, rev, ver = "wasmcloud:testing", "Testing", "wasmCloud", 8, "0.0.8"
    arch = ProviderArchive(capid, name, vendor, rev, ver)
    arch.add_library("aarch64-linux", b"blahblah")
    arch.add_library("x86_64-linux", b"bloobloo")
    arch.add_library("x86_64-macos", b"blarblar")

    path = arch.write(tmp_path / "original.par.gz", issuer, subject, True)
    arch2 = ProviderArchive.try_load(path.read_bytes())

    assert arch.capid == arch2.capid
    assert arch.libraries["aarch64-linux"] == arch2.libraries["aarch64-linux"]
    claims2 = arch2.claims()
    assert claims2.subject == subject.public_key()
    assert claims2.issuer == issuer.public_key()
    assert claims2.name == name
    assert claims2.metadata.ver == ver
    assert claims2.metadata.rev == rev
    assert claims2.metadata.vendor == vendor
    assert claims2.metadata.capid == capid

    arch2.add_library("mips-linux", b"bluhbluh")
    path2 = arch2.write(tmp_path / "linuxadded.par.gz", issuer, subject, True)
    arch3 = ProviderArchive.try_load(path2.read_bytes())

    assert arch3.capid == arch2.capid
    assert arch3.libraries["aarch64-linux"] == arch2.libraries["aarch64-linux"]
    claims3 = arch3.claims()
    assert claims3.subject == subject.public_key()
    assert claims3.issuer == issuer.public_key()
    assert claims3.name == name
    assert claims3.metadata.ver == ver
    assert claims3.metadata.rev == rev
    assert claims3.metadata.vendor == vendor
    assert claims3.metadata.capid == capid
    assert len(arch3.targets()) == 4


def test_claims_absent_before_write():
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    assert arch.claims() is None
    assert arch.target_bytes("missing") is None
    assert arch.targets() == ["aarch64-linux"]


@pytest.mark.parametrize("data", [b"", b"\x1f"])
def test_too_short_input_rejected(data):
    with pytest.raises(ArchiveError, match="Not enough bytes"):
        ProviderArchive.try_load(data)


def test_garbage_input_rejected():
    with pytest.raises(ArchiveError):
        ProviderArchive.try_load(b"\x1f\x8bthis is not gzip data")


def _repack(data, replace):
    out = io.BytesIO()
    with tarfile.open(fileobj=io.BytesIO(data)) as src, tarfile.open(
        fileobj=out, mode="w", format=tarfile.GNU_FORMAT
    ) as dst:
        for member in src:
            content = src.extractfile(member).read()
            content = replace.get(member.name, content)
            if content is None:
                continue
            info = tarfile.TarInfo(member.name)
            info.size = len(content)
            dst.addfile(info, io.BytesIO(content))
    return out.getvalue()


def test_tampered_library_rejected(tmp_path, issuer, subject):
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    path = arch.write(tmp_path / "tamper.par", issuer, subject, False)
    tampered = _repack(path.read_bytes(), {"aarch64-linux.bin": b"evil"})
    with pytest.raises(ArchiveError, match="do not match for 'aarch64-linux'"):
        ProviderArchive.try_load(tampered)


def test_missing_claims_rejected(tmp_path, issuer, subject):
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    path = arch.write(tmp_path / "noclaims.par", issuer, subject, False)
    stripped = _repack(path.read_bytes(), {"claims.jwt": None})
    with pytest.raises(ArchiveError, match="Not enough files"):
        ProviderArchive.try_load(stripped)


def test_invalid_claims_rejected(tmp_path, issuer, subject):
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    path = arch.write(tmp_path / "badclaims.par", issuer, subject, False)
    broken = _repack(path.read_bytes(), {"claims.jwt": b"not.a.token"})
    with pytest.raises(ArchiveError):
        ProviderArchive.try_load(broken)


def test_unlisted_library_rejected(tmp_path, issuer, subject):
    arch = _archive(1, "0.0.1", {"aarch64-linux": b"blahblah"})
    path = arch.write(tmp_path / "extra.par", issuer, subject, False)
    data = path.read_bytes()
    out = io.BytesIO()
    with tarfile.open(fileobj=io.BytesIO(data)) as src, tarfile.open(
        fileobj=out, mode="w"
    ) as dst:
        for member in src:
            dst.addfile(member, src.extractfile(member))
        info = tarfile.TarInfo("sneaky.bin")
        info.size = 3
        dst.addfile(info, io.BytesIO(b"bad"))
    with pytest.raises(ArchiveError, match="sneaky"):
        ProviderArchive.try_load(out.getvalue())