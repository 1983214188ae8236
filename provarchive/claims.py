"""Signed capability provider claims carried as compact JWTs."""

from __future__ import annotations

import base64
import binascii
import json
import time
import uuid
from dataclasses import dataclass, field

from provarchive.keys import KeyError_, KeyPair

WASCAP_REVISION = 3
_HEADER = {"typ": "jwt", "alg": "Ed25519"}


class ClaimsError(Exception):
    """Raised when claims cannot be encoded, decoded or verified."""


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as exc:
        raise ClaimsError(f"invalid base64 segment: {exc}") from exc


def _json_segment(text: str):
    try:
        return json.loads(_b64decode(text))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ClaimsError(f"invalid JSON segment: {exc}") from exc


def _dumps(value) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


@dataclass
class CapabilityProvider:
    """Metadata describing a capability provider and its library hashes."""

    capid: str
    vendor: str
    name: str | None = None
    rev: int | None = None
    ver: str | None = None
    target_hashes: dict[str, str] = field(default_factory=dict)

    def _to_json(self) -> dict:
        data = {
            "name": self.name,
            "capid": self.capid,
            "vendor": self.vendor,
            "rev": self.rev,
            "ver": self.ver,
            "target_hashes": dict(self.target_hashes),
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def _from_json(cls, data) -> CapabilityProvider:
        if not isinstance(data, dict):
            raise ClaimsError("provider metadata must be an object")
        try:
            capid, vendor = data["capid"], data["vendor"]
        except KeyError as exc:
            raise ClaimsError(f"provider metadata lacks {exc}") from exc
        hashes = data.get("target_hashes", {})
        if not isinstance(hashes, dict):
            raise ClaimsError("target_hashes must be an object")
        return cls(
            capid=capid,
            vendor=vendor,
            name=data.get("name"),
            rev=data.get("rev"),
            ver=data.get("ver"),
            target_hashes=dict(hashes),
        )


@dataclass
class Claims:
    """A set of claims issued by one key about another."""

    issuer: str
    subject: str
    issued_at: int
    id: str
    metadata: CapabilityProvider | None = None
    expires: int | None = None
    not_before: int | None = None
    wascap_revision: int | None = WASCAP_REVISION

    @classmethod
    def new(cls, name, issuer, subject, capid, vendor, rev, ver, target_hashes) -> Claims:
        """Build fresh provider claims issued now."""
        return cls(
            issuer=issuer,
            subject=subject,
            issued_at=int(time.time()),
            id=uuid.uuid4().hex,
            metadata=CapabilityProvider(
                capid=capid,
                vendor=vendor,
                name=name,
                rev=rev,
                ver=ver,
                target_hashes=dict(target_hashes),
            ),
        )

    @property
    def name(self) -> str:
        if self.metadata is None or self.metadata.name is None:
            return "Anonymous"
        return self.metadata.name

    def _to_json(self) -> dict:
        data = {
            "exp": self.expires,
            "jti": self.id,
            "iat": self.issued_at,
            "iss": self.issuer,
            "sub": self.subject,
            "nbf": self.not_before,
            "wascap": self.metadata._to_json() if self.metadata is not None else None,
            "wascap_revision": self.wascap_revision,
        }
        return {key: value for key, value in data.items() if value is not None}

    def encode(self, key_pair) -> str:
        """Sign these claims with key_pair and return the compact token."""
        signing_input = f"{_b64encode(_dumps(_HEADER))}.{_b64encode(_dumps(self._to_json()))}"
        try:
            signature = key_pair.sign(signing_input.encode("ascii"))
        except KeyError_ as exc:
            raise ClaimsError(f"cannot sign claims: {exc}") from exc
        return f"{signing_input}.{_b64encode(signature)}"

    @classmethod
    def decode(cls, token) -> Claims:
        """Parse a token and verify it was signed by its issuer."""
        if not isinstance(token, str):
            raise ClaimsError("token must be a string")
        parts = token.strip().split(".")
        if len(parts) != 3:
            raise ClaimsError("token must have three segments")
        header_text, payload_text, signature_text = parts

        header = _json_segment(header_text)
        if not isinstance(header, dict) or header.get("alg") != _HEADER["alg"]:
            raise ClaimsError("unsupported token algorithm")
        payload = _json_segment(payload_text)
        if not isinstance(payload, dict):
            raise ClaimsError("claims payload must be an object")

        issuer, subject = payload.get("iss"), payload.get("sub")
        if not isinstance(issuer, str) or not isinstance(subject, str):
            raise ClaimsError("claims lack an issuer or subject")
        signature = _b64decode(signature_text)
        try:
            KeyPair.from_public_key(issuer).verify(
                f"{header_text}.{payload_text}".encode("ascii"), signature
            )
        except KeyError_ as exc:
            raise ClaimsError(f"claims signature is invalid: {exc}") from exc

        metadata = payload.get("wascap")
        return cls(
            issuer=issuer,
            subject=subject,
            issued_at=payload.get("iat", 0),
            id=payload.get("jti", ""),
            metadata=CapabilityProvider._from_json(metadata) if metadata is not None else None,
            expires=payload.get("exp"),
            not_before=payload.get("nbf"),
            wascap_revision=payload.get("wascap_revision"),
        )