# provarchive

A provider archive is a tar file, which may be gzip-compressed. It holds one
native library per target, such as `x86_64-linux` or `aarch64-macos`, stored as
`<target>.bin`. Next to the libraries is a `claims.jwt` file. It holds the
provider's metadata (capability id, name, vendor, revision, version) and the
upper-case hex SHA-256 hash of every library. The claims are signed with an
Ed25519 issuer key. Loading an archive checks the signature and every library
hash, so a library cannot be replaced without signing the claims again.

## Installation

```
pip install provarchive
```

## Building an archive

```python
from provarchive.archive import ProviderArchive
from provarchive.keys import KeyPair

archive = ProviderArchive("example:testing", "Testing", "Example Vendor", 1, "0.0.1")
with open("libprovider.so", "rb") as fh:
    archive.add_library("x86_64-linux", fh.read())
with open("libprovider.dylib", "rb") as fh:
    archive.add_library("aarch64-macos", fh.read())

issuer = KeyPair.new_account()    # signs the claims
subject = KeyPair.new_service()   # identifies the provider

# Compressing appends ".gz" unless the name already ends with it;
# write returns the path that was written.
path = archive.write("provider.par", issuer, subject, True)
print(path)                                            # provider.par.gz
print(archive.claims().subject == subject.public_key())  # True
```

`claims()` returns `None` until the archive has been written or loaded. After
that it returns a copy of the embedded `Claims`. Every call to `write` signs a
new set of claims.

## Loading and verifying an archive

```python
from provarchive.archive import ArchiveError, ProviderArchive

with open("provider.par.gz", "rb") as fh:
    data = fh.read()

try:
    archive = ProviderArchive.try_load(data)
except ArchiveError as exc:
    print("invalid archive:", exc)
else:
    print(sorted(archive.targets()))
    library = archive.target_bytes("x86_64-linux")   # None if the target is absent
```

`try_load` reads plain and gzip-compressed archives alike. It raises
`ArchiveError` when:

- there are fewer than two bytes, or the gzip or tar data is invalid;
- there is no claims file, or there is no library;
- the claims are not valid UTF-8, cannot be parsed, or their signature does not
  verify against the issuer key;
- the claims carry no provider metadata;
- a library has no recorded hash, or its hash does not match.

You can add a library to a loaded archive with `add_library` and then `write` it
again. `hash_bytes(data)` gives the same upper-case hex SHA-256 digest that the
claims record.

## Keys and claims

`provarchive.keys.KeyPair` holds an Ed25519 key pair with a role prefix
(`KeyPrefix`, e.g. `ACCOUNT`, `SERVICE`). Its text forms are base32 with a CRC-16
checksum:

- `KeyPair.new_account()` and `KeyPair.new_service()` create random pairs;
- `public_key()` and `seed()` give the encoded forms;
- `KeyPair.from_seed(text)` restores a full pair;
- `KeyPair.from_public_key(text)` builds a pair that can only verify;
- `sign(data)` returns a 64-byte signature, and `verify(data, signature)` raises
  `KeyError_` if the signature is invalid.

`provarchive.claims.Claims` holds the issuer, subject, issue time, id and a
`CapabilityProvider` with the metadata and target hashes. `Claims.new(...)`
builds fresh claims. `encode(key_pair)` signs them as a compact JWT, and
`Claims.decode(token)` parses a token and verifies its signature. Both raise
`ClaimsError` on failure.

## What it does not do

- It is a library only. It has no command-line tool.
- It does not extract libraries to disk.
- It does not store keys. You keep the seed text yourself.
- It does not check claim expiry or not-before times when loading.

## Running the tests

```
pip install -e ".[test]"
pytest
```