from datetime import datetime, timedelta, timezone

import jwt

from wallet_auth.core.config import settings
from wallet_auth.core.jwt_utils import create_access_token
from wallet_auth.services.user_store import UserStore
from tests.conftest import sign_message

ADDRESS = "0xAbCdEf0000000000000000000000000000000001"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestProfileAPI:
    """Test cases for the /user/profile endpoint"""

    def test_profile_after_sign_in(self, client, wallet):
        """Test the token from /auth/verify opens the profile"""
        message = client.get("/auth/nonce").json()["message"]
        token = client.post(
            "/auth/verify",
            json={"message": message, "signature": sign_message(wallet, message), "address": wallet.address},
        ).json()["access_token"]

        response = client.get("/user/profile", headers=auth_header(token))

        assert response.status_code == 200
        data = response.json()
        assert data["address"] == wallet.address.lower()
        assert data["chain"] == "ethereum"
        assert data["login_count"] == 1
        assert data["last_login_at"] is not None

    def test_profile_plain_token(self, client, db_session):
        """Test the header also accepts a token without the Bearer prefix"""
        user = UserStore(db_session).upsert(ADDRESS)
        token = create_access_token(user.id, user.address)

        response = client.get("/user/profile", headers={"Authorization": token})

        assert response.status_code == 200
        assert response.json()["id"] == user.id

    def test_missing_header(self, client):
        response = client.get("/user/profile")

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header missing"

    def test_garbage_token(self, client):
        response = client.get("/user/profile", headers=auth_header("not-a-jwt"))

        assert response.status_code == 401

    def test_expired_token(self, client, db_session):
        user = UserStore(db_session).upsert(ADDRESS)
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": user.id, "address": user.address, "iat": past, "exp": past + timedelta(minutes=30)},
            settings.ENCODE_KEY,
            algorithm=settings.ENCODE_ALGORITHM,
        )

        response = client.get("/user/profile", headers=auth_header(token))

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_wrong_signing_key(self, client, db_session):
        user = UserStore(db_session).upsert(ADDRESS)
        token = jwt.encode(
            {"sub": user.id, "address": user.address},
            "some-other-key-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )

        response = client.get("/user/profile", headers=auth_header(token))

        assert response.status_code == 401

    def test_unknown_user(self, client):
        token = create_access_token("00000000-0000-0000-0000-000000000000", ADDRESS.lower())

        response = client.get("/user/profile", headers=auth_header(token))

        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    def test_address_claim_mismatch(self, client, db_session):
        """Test a token whose address differs from the stored user is refused"""
        user = UserStore(db_session).upsert(ADDRESS)
        token = create_access_token(user.id, "0x" + "2" * 40)

        response = client.get("/user/profile", headers=auth_header(token))

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"
