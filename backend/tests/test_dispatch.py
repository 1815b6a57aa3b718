"""
Campaign dispatch tests.

Verifies:
- SendPipeline spaces sends by the interval, first send immediate
- Every selected customer is assigned with sent=True, whatever their send outcome
- Customers without email fail with "no email on file" and cause no network call
- Missing channel credentials are refused before anything is written
- Editing through the wizard never sends
- The campaign HTTP routes around the wizard
"""

import json

import httpx
import pytest

from memimo_crm.errors import ChannelNotConfigured
from memimo_crm.extensions import db
from memimo_crm.models import Campaign, CampaignCustomer
from memimo_crm.services.channels import NO_EMAIL_REASON
from memimo_crm.services.dispatch_service import CampaignDispatcher, SendPipeline

from conftest import RecordingTransport


class FakeClock:
    """Monotonic clock that only moves when something sleeps or works."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def resend_ok(request):
    return httpx.Response(200, json={"id": "email-1"})


def dispatch_payload(customers, channel="email", **fields):
    payload_fields = {"name": "Festival de Lúcuma", "channel": channel}
    payload_fields.update(fields)
    return {"fields": payload_fields, "customer_ids": [c.id for c in customers]}


# =============================================================================
# SEND PIPELINE
# =============================================================================


class TestSendPipeline:

    def test_first_item_immediate_then_spaced(self):
        clock = FakeClock()
        pipeline = SendPipeline(1.0, sleep=clock.sleep, clock=clock)

        started = []

        def work(item):
            started.append(clock())
            clock.now += 0.25
            return item * 2

        assert pipeline.run([1, 2, 3], work) == [2, 4, 6]
        assert clock.sleeps == [1.0, 1.0]
        assert started == [100.0, 101.25, 102.5]

    def test_interval_counts_from_previous_finish(self):
        clock = FakeClock()
        pipeline = SendPipeline(1.0, sleep=clock.sleep, clock=clock)

        def slow(item):
            clock.now += 5
            return item

        pipeline.run(["a", "b"], slow)
        assert clock.sleeps == [1.0]

    def test_zero_interval_never_sleeps(self):
        clock = FakeClock()
        SendPipeline(0.0, sleep=clock.sleep, clock=clock).run(range(5), lambda i: i)
        assert clock.sleeps == []

    def test_negative_interval(self):
        with pytest.raises(ValueError):
            SendPipeline(-1)

    def test_error_still_counts_as_finished(self):
        clock = FakeClock()
        pipeline = SendPipeline(1.0, sleep=clock.sleep, clock=clock)

        def boom(item):
            raise RuntimeError(item)

        with pytest.raises(RuntimeError):
            pipeline.run(["x"], boom)
        pipeline.run(["y"], lambda item: item)
        assert clock.sleeps == [1.0]


# =============================================================================
# DISPATCHER
# =============================================================================


class TestCampaignDispatcher:

    def make_dispatcher(self, app, transport, **config):
        merged = dict(app.config)
        merged.update(config)
        clock = FakeClock()
        dispatcher = CampaignDispatcher(
            merged,
            http_client=httpx.Client(transport=transport),
            sleep=clock.sleep,
            clock=clock,
        )
        return dispatcher, clock

    def test_email_fan_out(self, app, admin_user, customers):
        def handler(request):
            if b"diego@example.com" in request.content:
                return httpx.Response(422, json={"message": "Invalid `to` field"})
            return resend_ok(request)

        transport = RecordingTransport(handler)
        dispatcher, clock = self.make_dispatcher(
            app, transport, RESEND_API_KEY="re_test", CAMPAIGN_SEND_INTERVAL_SECONDS=1.0,
        )

        result = dispatcher.dispatch(
            fields={"name": "Festival de Lúcuma", "channel": "email"},
            customer_ids=[c.id for c in customers],
            message=None,
            user_id=admin_user.id,
        )

        assert result.mode == "created"
        assert result.succeeded == 1
        assert result.failed == 2
        assert result.failures_with_reason(NO_EMAIL_REASON) == 1
        assert [o.error for o in result.outcomes] == [None, "Invalid `to` field", NO_EMAIL_REASON]

        # Rosa has no email: two HTTP calls, not three
        assert len(transport.requests) == 2
        # One pause between each pair of sends
        assert clock.sleeps == [1.0, 1.0]

        assert result.assigned == 3
        rows = db.session.query(CampaignCustomer).filter_by(campaign_id=result.campaign.id).all()
        assert sorted(r.customer_id for r in rows) == sorted(c.id for c in customers)
        assert all(r.sent for r in rows)

        campaign = db.session.get(Campaign, result.campaign.id)
        assert campaign.status == "active"
        assert campaign.created_by_user_id == admin_user.id

    def test_email_request_shape(self, app, customers):
        transport = RecordingTransport(resend_ok)
        dispatcher, _ = self.make_dispatcher(
            app, transport,
            RESEND_API_KEY="re_test",
            RESEND_API_URL="https://resend.test/emails",
            EMAIL_FROM="promos@memimo.pe",
        )

        dispatcher.dispatch(
            fields={"name": "Verano", "channel": "email"},
            customer_ids=[customers[0].id],
            message="2x1 <hoy>",
            user_id=None,
        )

        request = transport.requests[0]
        assert str(request.url) == "https://resend.test/emails"
        assert request.headers["Authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == ["lucia@example.com"]
        assert body["from"] == "Heladería Memimo <promos@memimo.pe>"
        assert body["subject"] == "🍦 Verano - Heladería Memimo"
        assert "2x1 &lt;hoy&gt;" in body["html"]
        assert "https://wa.me/51964123456" in body["html"]

    def test_network_errors_do_not_stop_the_loop(self, app, customers):
        def handler(request):
            if b"lucia@example.com" in request.content:
                raise httpx.ConnectError("connection refused", request=request)
            return resend_ok(request)

        transport = RecordingTransport(handler)
        dispatcher, _ = self.make_dispatcher(app, transport, RESEND_API_KEY="re_test")

        result = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "email"},
            customer_ids=[c.id for c in customers[:2]],
            message="Hola",
            user_id=None,
        )
        assert result.outcomes[0].error.startswith("Network error")
        assert result.outcomes[1].success
        assert result.assigned == 2

    def test_unexpected_errors_do_not_stop_the_loop(self, app, customers):
        def handler(request):
            if b"lucia@example.com" in request.content:
                raise RuntimeError("provider SDK blew up")
            return resend_ok(request)

        transport = RecordingTransport(handler)
        dispatcher, _ = self.make_dispatcher(app, transport, RESEND_API_KEY="re_test")

        result = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "email"},
            customer_ids=[c.id for c in customers],
            message="Hola",
            user_id=None,
        )
        assert [o.error for o in result.outcomes] == ["provider SDK blew up", None, NO_EMAIL_REASON]
        assert result.assigned == 3
        rows = db.session.query(CampaignCustomer).filter_by(campaign_id=result.campaign.id).all()
        assert len(rows) == 3
        assert all(r.sent for r in rows)

    def test_non_ascii_api_key_fails_each_recipient(self, app, customers):
        transport = RecordingTransport(resend_ok)
        dispatcher, _ = self.make_dispatcher(app, transport, RESEND_API_KEY="re_tést")

        result = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "email"},
            customer_ids=[c.id for c in customers[:2]],
            message="Hola",
            user_id=None,
        )
        assert result.succeeded == 0
        assert all(o.error for o in result.outcomes)
        assert result.assigned == 2
        assert transport.requests == []

    def test_telegram_goes_to_configured_chat(self, app, customers):
        transport = RecordingTransport(lambda request: httpx.Response(200, json={"ok": True, "result": {}}))
        dispatcher, _ = self.make_dispatcher(
            app, transport,
            TELEGRAM_BOT_TOKEN="123:abc",
            TELEGRAM_CHAT_ID="-100200",
            TELEGRAM_API_URL="https://telegram.test",
        )

        result = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "telegram"},
            customer_ids=[c.id for c in customers],
            message="Hola",
            user_id=None,
        )

        assert result.succeeded == 3
        assert {o.destination for o in result.outcomes} == {"-100200"}
        assert [r.url.path for r in transport.requests] == ["/bot123:abc/sendMessage"] * 3

    def test_simulated_channel(self, app, customers):
        transport = RecordingTransport(resend_ok)
        dispatcher, clock = self.make_dispatcher(
            app, transport, SIMULATED_CHANNEL_PAUSE_SECONDS=3.0, CAMPAIGN_SEND_INTERVAL_SECONDS=1.0,
        )

        result = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "instagram"},
            customer_ids=[c.id for c in customers],
            message=None,
            user_id=None,
        )

        assert result.simulated
        assert result.succeeded == 3
        assert transport.requests == []
        # One settle pause for the batch, no per-send spacing
        assert clock.sleeps == [3.0]

    def test_unconfigured_channel_writes_nothing(self, app, customers):
        transport = RecordingTransport(resend_ok)
        dispatcher, _ = self.make_dispatcher(app, transport, RESEND_API_KEY=None)

        with pytest.raises(ChannelNotConfigured):
            dispatcher.dispatch(
                fields={"name": "Verano", "channel": "email"},
                customer_ids=[customers[0].id],
                message=None,
                user_id=None,
            )
        assert db.session.query(Campaign).count() == 0
        assert db.session.query(CampaignCustomer).count() == 0

    def test_edit_updates_without_sending(self, app, customers):
        transport = RecordingTransport(resend_ok)
        dispatcher, _ = self.make_dispatcher(app, transport, RESEND_API_KEY="re_test")

        created = dispatcher.dispatch(
            fields={"name": "Verano", "channel": "email"},
            customer_ids=[customers[0].id],
            message=None,
            user_id=None,
        )
        sent_before = len(transport.requests)

        result = dispatcher.dispatch(
            fields={"name": "Verano 2.0"},
            customer_ids=[c.id for c in customers],
            message=None,
            user_id=None,
            campaign_id=created.campaign.id,
        )

        assert result.mode == "updated"
        assert result.campaign.name == "Verano 2.0"
        assert len(transport.requests) == sent_before
        assert db.session.query(CampaignCustomer).count() == 1


# =============================================================================
# HTTP ROUTES
# =============================================================================


class TestCampaignRoutes:

    def test_dispatch_route(self, app, client, staff_headers, customers, mock_http, monkeypatch):
        monkeypatch.setitem(app.config, "RESEND_API_KEY", "re_test")
        transport = mock_http(resend_ok)

        resp = client.post(
            "/api/campaigns/dispatch",
            json=dispatch_payload(customers, discount_type="percentage", discount_value=1000),
            headers=staff_headers,
        )
        assert resp.status_code == 201
        data = resp.json
        assert data["succeeded"] == 2
        assert data["failed"] == 1
        assert data["assigned"] == 3
        assert len(transport.requests) == 2
        assert data["details"][2]["error"] == NO_EMAIL_REASON

        detail = client.get(f"/api/campaigns/{data['campaign']['id']}", headers=staff_headers).json
        assert len(detail["campaign"]["customers"]) == 3
        assert all(c["sent"] for c in detail["campaign"]["customers"])

    def test_dispatch_without_credentials(self, client, staff_headers, customers):
        resp = client.post("/api/campaigns/dispatch", json=dispatch_payload(customers), headers=staff_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "CHANNEL_NOT_CONFIGURED"
        assert db.session.query(Campaign).count() == 0

    def test_dispatch_requires_name_and_recipients(self, client, staff_headers, customers):
        resp = client.post(
            "/api/campaigns/dispatch",
            json={"fields": {"name": "", "channel": "whatsapp"}, "customer_ids": [customers[0].id]},
            headers=staff_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/campaigns/dispatch",
            json={"fields": {"name": "Verano", "channel": "whatsapp"}, "customer_ids": []},
            headers=staff_headers,
        )
        assert resp.status_code == 400
        assert "at least one customer" in resp.json["error"]

    def test_dispatch_unknown_customer(self, client, staff_headers, customers):
        resp = client.post(
            "/api/campaigns/dispatch",
            json={"fields": {"name": "Verano", "channel": "whatsapp"}, "customer_ids": [customers[0].id, 9999]},
            headers=staff_headers,
        )
        assert resp.status_code == 404
        assert resp.json["details"]["customer_ids"] == [9999]

    def test_dispatch_edit_mode(self, client, staff_headers, customers):
        created = client.post(
            "/api/campaigns",
            json={"name": "Verano", "channel": "whatsapp"},
            headers=staff_headers,
        ).json["campaign"]

        resp = client.post(
            "/api/campaigns/dispatch",
            json={
                "campaign_id": created["id"],
                "fields": {"description": "Nuevos sabores"},
                "customer_ids": [customers[0].id],
            },
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["mode"] == "updated"
        assert resp.json["campaign"]["description"] == "Nuevos sabores"
        assert db.session.query(CampaignCustomer).count() == 0

    def test_crud_stats_and_responded(self, client, admin_headers, customers):
        resp = client.post(
            "/api/campaigns/dispatch",
            json=dispatch_payload(customers, channel="facebook"),
            headers=admin_headers,
        )
        campaign_id = resp.json["campaign"]["id"]

        resp = client.patch(
            f"/api/campaigns/{campaign_id}/customers/{customers[1].id}",
            json={"responded": True},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["assignment"]["responded"] is True

        stats = client.get(f"/api/campaigns/{campaign_id}/stats", headers=admin_headers).json
        assert stats["total_sent"] == 3
        assert stats["total_responded"] == 1

        resp = client.patch(f"/api/campaigns/{campaign_id}/status", json={"status": "finished"}, headers=admin_headers)
        assert resp.json["campaign"]["status"] == "finished"

        listed = client.get("/api/campaigns?status=finished", headers=admin_headers).json
        assert [c["id"] for c in listed["items"]] == [campaign_id]

        resp = client.put(f"/api/campaigns/{campaign_id}", json={"channel": "fax"}, headers=admin_headers)
        assert resp.status_code == 400

        assert client.delete(f"/api/campaigns/{campaign_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/campaigns/{campaign_id}", headers=admin_headers).status_code == 404

    def test_preview_message(self, client, staff_headers):
        resp = client.post(
            "/api/campaigns/preview-message",
            json={"fields": {"name": "Verano", "discount_type": "fixed_amount", "discount_value": 250}},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert "S/ 2.50 de descuento" in resp.json["message"]

    def test_channel_statuses(self, client, staff_headers):
        resp = client.get("/api/campaigns/channels", headers=staff_headers)
        statuses = {c["channel"]: c for c in resp.json["channels"]}
        assert set(statuses) == {"email", "facebook", "instagram", "telegram", "whatsapp"}
        assert statuses["email"]["configured"] is False
        assert statuses["whatsapp"]["real"] is False
