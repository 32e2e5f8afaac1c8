"""
Unit tests for token issuance and verification.
"""
from datetime import timedelta

import pytest
from bson import ObjectId
from jose import jwt

from core.config import settings
from core.security import (
    ExpiredToken,
    InvalidToken,
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)


@pytest.fixture
def user():
    return {"_id": ObjectId(), "email": "ada@mail.com", "userName": "ada", "fullName": "Ada Lovelace"}


class TestTokens:

    def test_access_token_claims(self, user):
        payload = verify_access_token(create_access_token(user))

        assert payload["_id"] == str(user["_id"])
        assert payload["userName"] == "ada"
        assert payload["type"] == "access"

    def test_refresh_token_binds_identity(self, user):
        assert verify_refresh_token(create_refresh_token(user["_id"])) == str(user["_id"])

    def test_tokens_differ_within_the_same_second(self, user):
        assert create_refresh_token(user["_id"]) != create_refresh_token(user["_id"])

    def test_expired_refresh_token(self, user):
        token = create_refresh_token(user["_id"], expires_delta=timedelta(seconds=-1))

        with pytest.raises(ExpiredToken):
            verify_refresh_token(token)

    def test_wrong_signature(self, user):
        token = jwt.encode({"_id": str(user["_id"]), "type": "refresh"}, "another-secret", algorithm=settings.ALGORITHM)

        with pytest.raises(InvalidToken):
            verify_refresh_token(token)

    def test_token_type_is_enforced(self, user):
        with pytest.raises(InvalidToken):
            verify_refresh_token(create_access_token(user))
        with pytest.raises(InvalidToken):
            verify_access_token(create_refresh_token(user["_id"]))

    def test_expired_is_an_invalid_token(self):
        assert issubclass(ExpiredToken, InvalidToken)


class TestPasswords:

    def test_hash_round_trip(self):
        hashed = get_password_hash("s3cret")

        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("other", hashed)

    def test_blank_inputs_never_verify(self):
        assert not verify_password("", get_password_hash("x"))
        assert not verify_password("x", "")
