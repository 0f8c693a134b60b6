# tests/v1/test_events.py
"""Tests for the relay event endpoints."""

import time
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from jose import jwt
from pydantic import SecretStr

from gecko_mint.api.v1.dependencies import get_orchestrator
from gecko_mint.core.context import MintContext
from gecko_mint.main import create_app
from gecko_mint.services.issuance import IssuanceDecision, IssuanceOrchestrator

RELAY_SECRET = "relay-secret"


def _relay_token(secret: str = RELAY_SECRET, audience: str = "gecko-mint", **claims) -> str:
    payload = {
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _wait_for_record(context: MintContext, member_id: int, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if context.ledger.has_record(member_id):
            return True
        time.sleep(0.05)
    return False


@pytest.fixture()
def client(context: MintContext) -> Iterator[TestClient]:
    app = create_app(context=context)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def secured_client(context: MintContext) -> Iterator[TestClient]:
    context.settings.event_shared_secret = SecretStr(RELAY_SECRET)
    app = create_app(context=context)
    with TestClient(app) as test_client:
        yield test_client


class TestMemberJoined:
    """New-member events schedule issuance without waiting for it."""

    def test_first_join_is_scheduled_and_issued(self, client, context):
        response = client.post(
            "/api/v1/events/member-joined",
            json={"member_id": 42, "guild_id": context.settings.discord_guild_id},
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json() == {"member_id": 42, "decision": "scheduled"}
        assert _wait_for_record(context, 42)

    def test_rejoin_reports_already_issued(self, client, context):
        context.ledger.record(42, "existing-tx")

        response = client.post("/api/v1/events/member-joined", json={"member_id": 42})

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["decision"] == "already_issued"

    def test_other_guild_is_ignored(self, client):
        response = client.post(
            "/api/v1/events/member-joined",
            json={"member_id": 42, "guild_id": "somewhere-else"},
        )
        assert response.json()["decision"] == "ignored"

    def test_invalid_member_id_is_rejected(self, client):
        response = client.post("/api/v1/events/member-joined", json={"member_id": -1})
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "decision",
        [IssuanceDecision.REJECTED, IssuanceDecision.STORE_UNAVAILABLE],
    )
    def test_busy_pipeline_asks_relay_to_retry(self, client, mocker, decision):
        orchestrator = mocker.AsyncMock(spec=IssuanceOrchestrator)
        orchestrator.on_new_member.return_value = decision
        client.app.dependency_overrides[get_orchestrator] = lambda: orchestrator

        response = client.post("/api/v1/events/member-joined", json={"member_id": 42})

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.headers["Retry-After"] == "30"
        assert response.json()["detail"] == decision.value


class TestSessionReady:
    def test_ready_is_acknowledged(self, client):
        response = client.post("/api/v1/events/ready", json={"bot_name": "GeckoBot"})
        assert response.status_code == status.HTTP_202_ACCEPTED


class TestRelayAuthentication:
    """Events require a relay token once a shared secret is configured."""

    def test_missing_token_is_rejected(self, secured_client):
        response = secured_client.post("/api/v1/events/member-joined", json={"member_id": 1})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_valid_token_is_accepted(self, secured_client):
        response = secured_client.post(
            "/api/v1/events/member-joined",
            json={"member_id": 1},
            headers={"Authorization": f"Bearer {_relay_token()}"},
        )
        assert response.status_code == status.HTTP_202_ACCEPTED

    @pytest.mark.parametrize(
        "token",
        [
            _relay_token(secret="wrong-secret"),
            _relay_token(audience="someone-else"),
            "not.a.valid.jwt",
        ],
    )
    def test_bad_tokens_are_rejected(self, secured_client, token):
        response = secured_client.post(
            "/api/v1/events/ready",
            json={"bot_name": "GeckoBot"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_expired_token_is_rejected(self, secured_client):
        expired = jwt.encode(
            {"aud": "gecko-mint", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            RELAY_SECRET,
            algorithm="HS256",
        )
        response = secured_client.post(
            "/api/v1/events/ready",
            json={"bot_name": "GeckoBot"},
            headers={"Authorization": f"Bearer {expired}"},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
