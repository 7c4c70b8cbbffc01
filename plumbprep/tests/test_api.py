import uuid
from types import SimpleNamespace

import pytest
import stripe

from sqlalchemy import select

from app import main as main_module
from app.models import Referral
from app.services.billing import billing_service
from app.services.referrals import referral_service
from app.services.stripe_webhook import webhook_handler


@pytest.mark.asyncio
async def test_health(client, monkeypatch):
    async def database_up():
        return True

    monkeypatch.setattr(main_module, "ping_database", database_up)

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "ok"


# Referrals

@pytest.mark.asyncio
async def test_referral_endpoints_require_auth(client):
    assert (await client.get("/api/v1/referrals/stats")).status_code == 401
    assert (await client.get("/api/v1/referrals/commission-preview")).status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client):
    response = await client.get("/api/v1/referrals/stats", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_commission_preview(client, make_user, auth_headers):
    user = await make_user("professional")

    response = await client.get("/api/v1/referrals/commission-preview", headers=auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["referrerTier"] == "professional"
    assert data["commissionPreviews"]["master"]["eligibleTier"] == "professional"
    assert data["commissionPreviews"]["master"]["commissionAmount"] == 3.0


@pytest.mark.asyncio
async def test_earnings_potential(client, make_user, auth_headers):
    user = await make_user("basic")

    response = await client.get("/api/v1/referrals/earnings-potential", headers=auth_headers(user))

    assert response.json()["maxMonthlyCommission"] == 2.0


@pytest.mark.asyncio
async def test_stats_assigns_referral_code(client, make_user, auth_headers):
    user = await make_user("master")

    first = (await client.get("/api/v1/referrals/stats", headers=auth_headers(user))).json()
    second = (await client.get("/api/v1/referrals/stats", headers=auth_headers(user))).json()

    assert len(first["referralCode"]) == 6
    assert second["referralCode"] == first["referralCode"]
    assert first["referralLink"].endswith(f"/register?ref={first['referralCode']}")
    assert first["totalReferrals"] == 0
    assert first["earnings"] == {"total": 0.0, "unpaid": 0.0, "paid": 0.0}


@pytest.mark.asyncio
async def test_process_referral_is_idempotent(client, make_user, auth_headers):
    referrer = await make_user("professional")
    referred = await make_user("master", referred_by=referrer.id, subscription_status="active")
    body = {"referredUserId": str(referred.id), "referredPlanTier": "master"}

    first = await client.post("/api/v1/referrals/process", json=body, headers=auth_headers(referrer))
    second = await client.post("/api/v1/referrals/process", json=body, headers=auth_headers(referrer))

    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["commission"]["commissionAmount"] == 3.0
    assert second.json()["created"] is False

    stats = (await client.get("/api/v1/referrals/stats", headers=auth_headers(referrer))).json()
    assert stats["totalReferrals"] == 1
    assert stats["earnings"]["unpaid"] == 3.0


@pytest.mark.asyncio
async def test_process_referral_uses_stored_plan(client, make_user, auth_headers):
    referrer = await make_user("master")
    referred = await make_user("basic", referred_by=referrer.id, subscription_status="active")

    response = await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(referred.id)},
        headers=auth_headers(referrer),
    )

    assert response.status_code == 200
    assert response.json()["referral"]["referredPlanTier"] == "basic"
    assert response.json()["commission"] == {
        "eligibleTier": "basic",
        "eligiblePrice": 19.99,
        "commissionAmount": 2.0,
    }


@pytest.mark.asyncio
async def test_process_referral_rejects_claimed_plan_mismatch(client, make_user, auth_headers):
    referrer = await make_user("master")
    referred = await make_user("basic", referred_by=referrer.id, subscription_status="active")

    response = await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(referred.id), "referredPlanTier": "master"},
        headers=auth_headers(referrer),
    )

    assert response.status_code == 400
    assert "basic" in response.json()["detail"]

    stats = (await client.get("/api/v1/referrals/stats", headers=auth_headers(referrer))).json()
    assert stats["totalReferrals"] == 0


@pytest.mark.asyncio
async def test_process_referral_requires_paid_subscription(client, make_user, auth_headers):
    referrer = await make_user("master")
    referred = await make_user("basic", referred_by=referrer.id)

    response = await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(referred.id), "referredPlanTier": "basic"},
        headers=auth_headers(referrer),
    )

    assert response.status_code == 400

    stats = (await client.get("/api/v1/referrals/stats", headers=auth_headers(referrer))).json()
    assert stats["totalReferrals"] == 0


@pytest.mark.asyncio
async def test_duplicate_process_reports_the_stored_commission(client, db, make_user, auth_headers):
    referrer = await make_user("basic")
    referred = await make_user("master", referred_by=referrer.id, subscription_status="active")
    body = {"referredUserId": str(referred.id)}

    first = await client.post("/api/v1/referrals/process", json=body, headers=auth_headers(referrer))
    assert first.json()["commission"]["commissionAmount"] == 2.0

    # Referrer upgrades after the referral was recorded
    referrer.subscription_tier = "master"
    await db.commit()

    second = await client.post("/api/v1/referrals/process", json=body, headers=auth_headers(referrer))

    assert second.json()["created"] is False
    assert second.json()["commission"]["commissionAmount"] == 2.0
    assert second.json()["commission"]["eligibleTier"] == "basic"


@pytest.mark.asyncio
async def test_process_referral_rejects_invalid_tier(client, make_user, auth_headers):
    referrer = await make_user("master")
    referred = await make_user("basic", referred_by=referrer.id)

    response = await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(referred.id), "referredPlanTier": "gold"},
        headers=auth_headers(referrer),
    )

    assert response.status_code == 400
    assert "gold" in response.json()["detail"]


@pytest.mark.asyncio
async def test_process_referral_for_someone_else(client, make_user, auth_headers):
    referrer = await make_user("master")
    stranger = await make_user("basic")

    response = await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(stranger.id), "referredPlanTier": "basic"},
        headers=auth_headers(referrer),
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_invitation(client, make_user, auth_headers, sent_emails):
    user = await make_user("basic", name="Marie Thibodeaux")

    response = await client.post(
        "/api/v1/referrals/send-invitation",
        json={"email": "friend@example.com", "name": "Luc"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert sent_emails[0]["kind"] == "referral_invitation"
    assert sent_emails[0]["kwargs"]["referral_code"] == response.json()["referralCode"]
    assert sent_emails[0]["kwargs"]["referrer_name"] == "Marie Thibodeaux"


# Bulk pricing and enrollment

@pytest.mark.asyncio
async def test_bulk_tiers_listed(client, seeded_db):
    response = await client.get("/api/v1/bulk-pricing/tiers")

    tiers = response.json()["tiers"]
    assert [t["tierName"] for t in tiers] == ["Small Team", "Medium Team", "Large Company"]
    assert tiers[2]["maxStudents"] is None


@pytest.mark.asyncio
async def test_bulk_quote(client, seeded_db):
    response = await client.post("/api/v1/bulk-pricing/calculate", json={"studentCount": 50})

    assert response.status_code == 200
    pricing = response.json()["pricing"]
    assert pricing["courseIds"] == ["journeyman"]
    assert pricing["discountPercent"] == 25.0
    assert pricing["finalPrice"] == 1837.5


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"studentCount": 0}, {"studentCount": 5, "courseIds": []}])
async def test_bulk_quote_rejects_bad_input(client, seeded_db, body):
    response = await client.post("/api/v1/bulk-pricing/calculate", json=body)
    assert response.status_code == 400


def bulk_request_body(count=5):
    return {
        "employerId": "bayou-plumbing",
        "studentEmails": [
            {"email": f"apprentice{i}@example.com", "firstName": f"Apprentice{i}"}
            for i in range(count)
        ],
        "contactEmail": "owner@bayou.example.com",
        "contactPhone": "504-555-0100",
    }


@pytest.mark.asyncio
async def test_bulk_enrollment_request_flow(client, seeded_db, make_user, auth_headers, sent_emails):
    admin = await make_user("master", is_admin=True, email="admin@laplumbprep.com")

    created = await client.post("/api/v1/bulk-enrollment/request", json=bulk_request_body(5))
    assert created.status_code == 201
    data = created.json()
    assert data["studentCount"] == 5
    assert data["bulkRequest"]["status"] == "pending"
    assert data["bulkRequest"]["finalPrice"] == 220.5
    assert [e["kind"] for e in sent_emails] == ["bulk_received"]

    request_id = data["bulkRequest"]["id"]

    listed = await client.get("/api/v1/bulk-enrollment/requests/bayou-plumbing")
    assert [r["id"] for r in listed.json()["requests"]] == [request_id]

    students = await client.get(f"/api/v1/bulk-enrollment/{request_id}/students")
    assert len(students.json()["students"]) == 5

    approved = await client.post(f"/admin/bulk-enrollment/{request_id}/approve", headers=auth_headers(admin))
    assert approved.status_code == 200
    assert approved.json()["request"]["approvedBy"] == "admin@laplumbprep.com"
    assert len([e for e in sent_emails if e["kind"] == "enrollment_invite"]) == 5

    again = await client.post(f"/admin/bulk-enrollment/{request_id}/reject", headers=auth_headers(admin))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_bulk_enrollment_request_validation(client, seeded_db):
    empty = bulk_request_body(0)
    assert (await client.post("/api/v1/bulk-enrollment/request", json=empty)).status_code == 400

    missing_name = bulk_request_body(1)
    missing_name["studentEmails"][0].pop("firstName")
    assert (await client.post("/api/v1/bulk-enrollment/request", json=missing_name)).status_code == 422


@pytest.mark.asyncio
async def test_admin_routes_require_admin(client, make_user, auth_headers):
    student = await make_user("master")

    response = await client.post(f"/admin/bulk-enrollment/{uuid.uuid4()}/approve", headers=auth_headers(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_bulk_tiers(client, seeded_db, make_user, auth_headers):
    admin = await make_user("master", is_admin=True)
    headers = auth_headers(admin)

    overlap = await client.post(
        "/admin/bulk-tiers",
        json={"tierName": "Crew", "minStudents": 10, "maxStudents": 30, "discountPercent": "12"},
        headers=headers,
    )
    assert overlap.status_code == 409

    created = await client.post(
        "/admin/bulk-tiers",
        json={"tierName": "Pair", "minStudents": 2, "maxStudents": 4, "discountPercent": "5"},
        headers=headers,
    )
    assert created.status_code == 201
    tier_id = created.json()["tier"]["id"]

    quote = await client.post("/api/v1/bulk-pricing/calculate", json={"studentCount": 3})
    assert quote.json()["pricing"]["discountPercent"] == 5.0

    deactivated = await client.post(f"/admin/bulk-tiers/{tier_id}/deactivate", headers=headers)
    assert deactivated.json()["tier"]["isActive"] is False

    listed = await client.get("/admin/bulk-tiers", headers=headers)
    assert len(listed.json()["tiers"]) == 4


@pytest.mark.asyncio
async def test_admin_referral_payout(client, make_user, auth_headers):
    admin = await make_user("master", is_admin=True)
    referrer = await make_user("master")
    referred = await make_user("professional", referred_by=referrer.id, subscription_status="active")

    await client.post(
        "/api/v1/referrals/process",
        json={"referredUserId": str(referred.id), "referredPlanTier": "professional"},
        headers=auth_headers(referrer),
    )

    unpaid = (await client.get("/admin/referrals/unpaid", headers=auth_headers(admin))).json()
    assert unpaid["count"] == 1
    assert unpaid["totalUnpaid"] == 3.0

    referral_id = unpaid["referrals"][0]["id"]
    paid = await client.post(f"/admin/referrals/{referral_id}/mark-paid", headers=auth_headers(admin))
    assert paid.json()["referral"]["isPaid"] is True

    assert (await client.get("/admin/referrals/unpaid", headers=auth_headers(admin))).json()["count"] == 0


async def seed_plan_changes(db, make_user):
    """A master referrer with one referral that changed plan in two different months"""
    referrer = await make_user("master")
    referred = await make_user("basic", referred_by=referrer.id, subscription_status="active")
    await referral_service.record_referral(db, referrer, referred.id, "basic")

    await referral_service.record_plan_change(db, referred.id, "professional", "evt_sep", commission_month="2026-09")
    [(october, _)] = await referral_service.record_plan_change(
        db, referred.id, "master", "evt_oct", commission_month="2026-10"
    )
    return referrer, october


@pytest.mark.asyncio
async def test_monthly_commissions_endpoints(client, db, make_user, auth_headers):
    referrer, _ = await seed_plan_changes(db, make_user)
    headers = auth_headers(referrer)

    listed = (await client.get("/api/v1/referrals/monthly-commissions", headers=headers)).json()
    assert [c["commissionMonth"] for c in listed["commissions"]] == ["2026-10", "2026-09"]
    assert listed["total"] == 8.0
    assert listed["unpaid"] == 8.0

    october = (await client.get(
        "/api/v1/referrals/monthly-commissions", params={"month": "2026-10"}, headers=headers
    )).json()
    assert len(october["commissions"]) == 1
    assert october["commissions"][0]["eligibleTier"] == "master"
    assert october["total"] == 5.0

    summary = (await client.get("/api/v1/referrals/monthly-earnings-summary", headers=headers)).json()
    assert summary["totalMonthlyEarnings"] == 8.0
    assert [m["month"] for m in summary["monthlyBreakdown"]] == ["2026-10", "2026-09"]
    assert summary["monthlyBreakdown"][1] == {"month": "2026-09", "count": 1, "total": 3.0, "paid": 0.0, "unpaid": 3.0}


@pytest.mark.asyncio
async def test_monthly_commissions_rejects_malformed_month(client, make_user, auth_headers):
    user = await make_user("basic")

    response = await client.get(
        "/api/v1/referrals/monthly-commissions", params={"month": "2026-13"}, headers=auth_headers(user)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_monthly_commission_payout(client, db, make_user, auth_headers):
    admin = await make_user("master", is_admin=True)
    referrer, october = await seed_plan_changes(db, make_user)
    headers = auth_headers(admin)

    payout = (await client.get(f"/admin/referrals/payout/{referrer.id}", headers=headers)).json()
    assert len(payout["referrals"]) == 1
    assert len(payout["monthlyCommissions"]) == 2
    assert payout["totalAmount"] == 10.0

    paid = await client.post(f"/admin/referrals/monthly/{october.id}/mark-paid", headers=headers)
    assert paid.json()["monthlyCommission"]["isPaid"] is True

    unpaid = (await client.get("/admin/referrals/monthly/unpaid", headers=headers)).json()
    assert unpaid["count"] == 1
    assert unpaid["totalUnpaid"] == 3.0

    missing = await client.post(f"/admin/referrals/monthly/{uuid.uuid4()}/mark-paid", headers=headers)
    assert missing.status_code == 404


# Employers and billing

@pytest.mark.asyncio
async def test_job_posting_pricing_preview(client):
    response = await client.get("/api/v1/employers/job-postings/pricing", params={"quantity": 7})

    plans = response.json()["plans"]
    assert plans["basic"]["unitPrice"] == 41.65
    assert plans["premium"]["totalPrice"] == 529.55


@pytest.mark.asyncio
async def test_job_posting_pricing_rejects_zero(client):
    response = await client.get("/api/v1/employers/job-postings/pricing", params={"quantity": 0})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_payment_intent_matches_preview(client, monkeypatch):
    charged = {}

    def fake_create(**kwargs):
        charged.update(kwargs)
        return SimpleNamespace(id="pi_1", client_secret="pi_1_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    preview = (await client.get("/api/v1/employers/job-postings/pricing", params={"quantity": 7})).json()
    response = await client.post("/api/v1/employers/payment-intent", json={"quantity": 7, "planType": "premium"})

    data = response.json()
    assert data["clientSecret"] == "pi_1_secret"
    assert data["unitPrice"] == preview["plans"]["premium"]["unitPrice"]
    assert data["amount"] == preview["plans"]["premium"]["totalPrice"]
    assert charged["amount"] == 52955


@pytest.mark.asyncio
async def test_payment_intent_rejects_unknown_plan(client):
    response = await client.post("/api/v1/employers/payment-intent", json={"quantity": 3, "planType": "platinum"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_requires_configured_price(client, make_user, auth_headers):
    user = await make_user("basic")

    response = await client.post("/api/v1/billing/checkout", json={"planTier": "master"}, headers=auth_headers(user))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_carries_referrer(client, make_user, auth_headers, monkeypatch):
    referrer = await make_user("master")
    user = await make_user("basic", referred_by=referrer.id)
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_1", url="https://checkout.stripe.test/cs_1")

    monkeypatch.setitem(billing_service.price_ids, "professional", "price_pro")
    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    response = await client.post("/api/v1/billing/checkout", json={"planTier": "professional"}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["checkoutUrl"] == "https://checkout.stripe.test/cs_1"
    assert captured["subscription_data"]["metadata"]["referred_by"] == str(referrer.id)
    assert captured["line_items"][0]["price"] == "price_pro"


# Stripe webhook

@pytest.mark.asyncio
async def test_webhook_requires_signature(client):
    response = await client.post("/api/v1/stripe/webhook", content=b"{}")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_replay_through_http(client, make_user, monkeypatch, db):
    referrer = await make_user("professional")
    referred = await make_user("basic", referred_by=referrer.id)
    event = {
        "id": "evt_http_1",
        "type": "customer.subscription.created",
        "data": {
            "object": {
                "id": "sub_http_1",
                "customer": "cus_http_1",
                "status": "active",
                "items": {"data": []},
                "metadata": {"user_id": str(referred.id), "plan_tier": "master"},
            }
        },
    }
    monkeypatch.setattr(webhook_handler, "verify_webhook_signature", lambda payload, sig: event)

    for _ in range(2):
        response = await client.post("/api/v1/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
        assert response.status_code == 200

    referrals = (await db.execute(select(Referral))).scalars().all()
    assert len(referrals) == 1
    assert referrals[0].commission_amount == 3
