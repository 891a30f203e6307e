from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from signage_ledger.config import settings
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.database import get_db
from signage_ledger.main import app
from signage_ledger.services.ledger_service import LedgerService

from tests.conftest import seed_affiliate_settings, seed_contract, seed_plays, seed_referrals, NOW

ALL_CAPABILITIES = {
    "X-Actor-Id": "admin-1",
    "X-Actor-Capabilities": ",".join(sorted(Capability.all())),
}


def actor_headers(*capabilities: str, actor_id: str = "user-1") -> dict:
    return {"X-Actor-Id": actor_id, "X-Actor-Capabilities": ",".join(capabilities)}


def payment(invoice_id="inv-1", kind="SUBSCRIPTION", payer="D", amount="1000.00") -> dict:
    return {
        "invoice_id": invoice_id,
        "invoice_kind": kind,
        "payer_ref": payer,
        "amount": amount,
        "confirmed_at": NOW.isoformat(),
    }


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def referral_chain(session_factory):
    async with session_factory() as db:
        await seed_affiliate_settings(db, l1_percent="10", l2_percent="5")
        await seed_referrals(db, {"D": "C", "C": "B"})


class TestActorBoundary:

    async def test_missing_actor(self, client):
        response = await client.get("/api/v1/commissions")
        assert response.status_code == 401

    async def test_missing_capability(self, client):
        response = await client.get("/api/v1/commissions", headers=actor_headers(Capability.QUOTES_CREATE))
        assert response.status_code == 403
        assert Capability.LEDGER_READ in response.json()["detail"]

    async def test_scope_wildcard(self, client):
        response = await client.get("/api/v1/commissions", headers=actor_headers("ledger:*"))
        assert response.status_code == 200

    async def test_api_key_enforced_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "INTERNAL_API_KEY", "secret")

        response = await client.get("/api/v1/commissions", headers=ALL_CAPABILITIES)
        assert response.status_code == 401

        response = await client.get(
            "/api/v1/commissions", headers={**ALL_CAPABILITIES, "X-API-Key": "secret"}
        )
        assert response.status_code == 200

    def test_actor_capability_matching(self):
        actor = Actor("a", ["ledger:read", " settlements:* ", ""])
        assert actor.has_capability("ledger:read")
        assert not actor.has_capability("ledger:transition")
        assert actor.has_capability("settlements:generate")
        assert Actor("root", ["*"]).has_capability("quotes:create")


class TestPaymentsAndLedger:

    async def test_payment_creates_tiers_and_replay_is_idempotent(self, client, referral_chain):
        response = await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)
        assert response.status_code == 202
        body = response.json()
        amounts = {e["tier"]: Decimal(e["amount"]) for e in body["created"]}
        assert amounts == {"TIER1": Decimal("100.00"), "TIER2": Decimal("50.00")}

        replay = await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)
        assert replay.json()["created"] == []
        assert len(replay.json()["suppressed"]) == 2

        listing = await client.get("/api/v1/commissions", headers=ALL_CAPABILITIES)
        assert listing.json()["total"] == 2

    async def test_payment_failures_never_surface_as_errors(self, client, referral_chain):
        response = await client.post(
            "/api/v1/payments/confirmed", json=payment(amount="-5"), headers=ALL_CAPABILITIES
        )
        assert response.status_code == 202
        assert response.json()["errors"]

    async def test_transition_lifecycle(self, client, referral_chain):
        created = await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)
        entry_id = created.json()["created"][0]["id"]

        paid = await client.post(
            f"/api/v1/commissions/{entry_id}/transition",
            json={"status": "PAID"},
            headers=ALL_CAPABILITIES,
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "PAID"
        assert paid.json()["paid_by"] == "admin-1"

        cancel = await client.post(
            f"/api/v1/commissions/{entry_id}/transition",
            json={"status": "CANCELLED", "reason": "refund"},
            headers=ALL_CAPABILITIES,
        )
        assert cancel.status_code == 409
        assert cancel.json()["type"] == "InvalidStateError"

        fetched = await client.get(f"/api/v1/commissions/{entry_id}", headers=ALL_CAPABILITIES)
        assert fetched.json()["status"] == "PAID"

    async def test_transition_needs_transition_capability(self, client, referral_chain):
        created = await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)
        entry_id = created.json()["created"][0]["id"]

        response = await client.post(
            f"/api/v1/commissions/{entry_id}/transition",
            json={"status": "PAID"},
            headers=actor_headers(Capability.LEDGER_READ),
        )
        assert response.status_code == 403

    async def test_unknown_entry(self, client):
        response = await client.get(
            "/api/v1/commissions/00000000-0000-0000-0000-000000000000", headers=ALL_CAPABILITIES
        )
        assert response.status_code == 404

    async def test_batch_reports_per_id(self, client, referral_chain):
        created = await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)
        ids = [e["id"] for e in created.json()["created"]]
        await client.post(
            f"/api/v1/commissions/{ids[1]}/transition", json={"status": "CANCELLED"}, headers=ALL_CAPABILITIES
        )

        response = await client.post(
            "/api/v1/commissions/batch",
            json={"ids": ids, "status": "PAID"},
            headers=ALL_CAPABILITIES,
        )
        body = response.json()
        assert response.status_code == 200
        assert (body["success_count"], body["fail_count"]) == (1, 1)
        assert body["results"][1]["reason"]

    async def test_balances_stats_and_summary(self, client, referral_chain):
        await client.post("/api/v1/payments/confirmed", json=payment(), headers=ALL_CAPABILITIES)

        balances = await client.get("/api/v1/commissions/balances/C", headers=ALL_CAPABILITIES)
        assert Decimal(balances.json()["locked"]) == Decimal("100.00")

        stats = await client.get("/api/v1/commissions/stats/C", headers=ALL_CAPABILITIES)
        assert Decimal(stats.json()["tier1_earnings"]) == Decimal("100.00")
        assert stats.json()["withdrawable"] is False

        summary = await client.get("/api/v1/commissions/summary?beneficiary_id=B", headers=ALL_CAPABILITIES)
        assert Decimal(summary.json()["total_pending"]) == Decimal("50.00")

    async def test_contract_payment(self, client, session_factory):
        async with session_factory() as db:
            await seed_contract(db, "ct-1", "agent-1", "8")

        response = await client.post(
            "/api/v1/payments/confirmed",
            json=payment(invoice_id="cinv-1", kind="CONTRACT", payer="ct-1", amount="2000.00"),
            headers=ALL_CAPABILITIES,
        )
        entry = response.json()["created"][0]
        assert entry["tier"] == "AGENT"
        assert Decimal(entry["amount"]) == Decimal("160.00")


class TestQuotesAndSettlements:

    async def test_quote_budget_feeds_settlement(self, client, session_factory):
        quote = await client.post(
            "/api/v1/quotes",
            json={
                "terminals": [{"id": "m-1", "tier": "BRONZE"}],
                "plays_per_day": 100,
                "duration_days": 10,
                "campaign_id": "camp-1",
            },
            headers=ALL_CAPABILITIES,
        )
        assert quote.status_code == 200
        assert Decimal(quote.json()["discounted_total"]) == Decimal("50.00")
        assert quote.json()["total_plays"] == 1000

        async with session_factory() as db:
            await seed_plays(db, "m-1", "camp-1", 200, NOW)

        request = {
            "period_start": "2026-03-01",
            "period_end": "2026-03-31",
            "targets": [{
                "target_id": "owner-1",
                "target_type": "LOCATION_OWNER",
                "share_percent": "50",
                "monitor_ids": ["m-1"],
            }],
        }
        generated = await client.post("/api/v1/settlements/generate", json=request, headers=ALL_CAPABILITIES)
        assert generated.status_code == 200
        settlement = generated.json()["settlements"][0]
        # 200 plays x (50.00 / 1000) x 50%
        assert Decimal(settlement["total_amount"]) == Decimal("5.00")

        again = await client.post("/api/v1/settlements/generate", json=request, headers=ALL_CAPABILITIES)
        assert again.json()["unchanged"] == ["owner-1"]

        listing = await client.get("/api/v1/settlements?target_id=owner-1", headers=ALL_CAPABILITIES)
        assert listing.json()["total"] == 1

        fetched = await client.get(f"/api/v1/settlements/{settlement['id']}", headers=ALL_CAPABILITIES)
        assert fetched.json()["details"][0]["plays"] == 200

    async def test_generate_rejects_reversed_period(self, client):
        response = await client.post(
            "/api/v1/settlements/generate",
            json={
                "period_start": "2026-03-31",
                "period_end": "2026-03-01",
                "targets": [{"target_id": "agent-1", "target_type": "SALES_AGENT"}],
            },
            headers=ALL_CAPABILITIES,
        )
        assert response.status_code == 422

    async def test_quote_with_no_terminals_in_radius(self, client):
        response = await client.post(
            "/api/v1/quotes",
            json={
                "terminals": [{"id": "t-1", "latitude": -22.9, "longitude": -43.17}],
                "geo_filter": {"center_lat": -23.55, "center_lng": -46.63, "radius_km": 5},
                "plays_per_day": 10,
                "duration_days": 1,
            },
            headers=ALL_CAPABILITIES,
        )
        assert response.status_code == 400
        assert response.json()["type"] == "ValidationError"


class TestSettingsAndErrors:

    async def test_affiliate_settings_defaults(self, client):
        response = await client.get("/api/v1/settings/affiliate", headers=ALL_CAPABILITIES)
        assert response.status_code == 200
        assert response.json()["enabled"] is True
        assert response.json()["lock_days"] == settings.AFFILIATE_LOCK_DAYS

    async def test_unexpected_errors_are_generic(self, client, monkeypatch):
        async def explode(self, beneficiary_id):
            raise RuntimeError("connection string leaked")

        monkeypatch.setattr(LedgerService, "balances_for", explode)
        response = await client.get("/api/v1/commissions/balances/C", headers=ALL_CAPABILITIES)

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "connected"
