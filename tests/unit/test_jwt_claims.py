"""Unit tests for bearer token verification and identity claims."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from playdates.auth.jwt import groups_from_claims, verify_token
from playdates.config import get_settings


def _encode(payload: dict) -> str:
    settings = get_settings()
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestVerifyToken:

    def test_valid(self):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        payload = verify_token(_encode({"sub": "sam", "exp": exp}))
        assert payload["sub"] == "sam"

    def test_subject_required(self):
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(_encode({"name": "sam"}))

    def test_expired(self):
        exp = datetime.now(timezone.utc) - timedelta(minutes=5)
        with pytest.raises(jwt.InvalidTokenError, match="Token has expired"):
            verify_token(_encode({"sub": "sam", "exp": exp}))

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "sam"}, "some-other-secret-of-sufficient-length", algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token)


class TestGroupsClaim:

    def test_list(self):
        claim = get_settings().jwt_groups_claim
        assert groups_from_claims({claim: ["admin", "players"]}) == ["admin", "players"]

    def test_comma_separated(self):
        claim = get_settings().jwt_groups_claim
        assert groups_from_claims({claim: "admin, players,"}) == ["admin", "players"]

    def test_missing(self):
        assert groups_from_claims({"sub": "sam"}) == []


class TestPublicKeyVerification:

    def test_rs256_with_public_key_file(self, tmp_path, monkeypatch):
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import rsa

        from playdates.auth.jwt import reset_keys

        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        public_pem = private_key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        key_path = tmp_path / "jwt_public.pem"
        key_path.write_bytes(public_pem)

        monkeypatch.setenv("PLAYDATES_JWT_ALGORITHM", "RS256")
        monkeypatch.setenv("PLAYDATES_JWT_PUBLIC_KEY_PATH", str(key_path))
        get_settings.cache_clear()
        reset_keys()
        try:
            token = jwt.encode({"sub": "ada"}, private_key, algorithm="RS256")
            assert verify_token(token)["sub"] == "ada"
        finally:
            monkeypatch.undo()
            get_settings.cache_clear()
            reset_keys()
