"""
Campaign service and wizard tests.

Verifies:
- Field validation (channel, discount units, date order)
- Admin-only status changes
- Assignment upsert, responded flag, stats
- Default message template
- Wizard step rules, message editing and terminal states
"""

from datetime import date

import pytest

from memimo_crm.errors import AuthUnauthorized, NotFoundError
from memimo_crm.extensions import db
from memimo_crm.models import CampaignCustomer
from memimo_crm.services import campaign_service
from memimo_crm.services.campaign_wizard import CampaignWizard, WizardError, WizardStep, run_wizard
from memimo_crm.services.dispatch_service import CampaignDispatcher
from memimo_crm.validation import ValidationError


def make_campaign(**overrides):
    fields = {"name": "Festival de Lúcuma", "channel": "whatsapp"}
    fields.update(overrides)
    patch = campaign_service.validate_campaign_fields(fields)
    return campaign_service.create_campaign(patch)


class FakeDispatcher:
    """Stands in for CampaignDispatcher; records the dispatch call."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def dispatch(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return "dispatched"


# =============================================================================
# VALIDATION
# =============================================================================


class TestCampaignValidation:

    def test_minimal_campaign(self, db_session):
        campaign = make_campaign()
        assert campaign.status == "active"
        assert campaign.channel == "whatsapp"

    @pytest.mark.parametrize(
        "fields,message",
        [
            ({"channel": "whatsapp"}, "Missing required fields: name"),
            ({"name": "X", "channel": "fax"}, "channel must be one of"),
            ({"name": "X", "channel": "email", "discount_type": "bogus", "discount_value": 5}, "discount_type"),
            ({"name": "X", "channel": "email", "discount_type": "percentage", "discount_value": 10_001}, "100%"),
            ({"name": "X", "channel": "email", "discount_type": "fixed_amount", "discount_value": -1}, ">= 0"),
            ({"name": "X", "channel": "email", "discount_type": "percentage"}, "discount_value is required"),
            ({"name": "X", "channel": "email", "start_date": "2025-03-10", "end_date": "2025-03-01"}, "end_date"),
            ({"name": "   ", "channel": "email"}, "name"),
        ],
    )
    def test_rejected(self, db_session, fields, message):
        with pytest.raises(ValidationError) as exc:
            campaign_service.validate_campaign_fields(fields)
        assert message in str(exc.value)

    def test_partial_update_checks_merged_dates(self, db_session):
        campaign = make_campaign(start_date="2025-03-10", end_date="2025-03-20")
        with pytest.raises(ValidationError):
            campaign_service.update_campaign(campaign.id, {"end_date": "2025-03-01"})

    def test_update_keeps_status(self, db_session):
        campaign = make_campaign()
        updated = campaign_service.update_campaign(campaign.id, {"description": "2x1 en conos"})
        assert updated.description == "2x1 en conos"
        assert updated.status == "active"
        assert updated.updated_at is not None


# =============================================================================
# STATUS / DELETE
# =============================================================================


class TestCampaignStatus:

    def test_admin_changes_status(self, admin_user):
        campaign = make_campaign()
        assert campaign_service.change_status(campaign.id, "paused", admin_user.id).status == "paused"

    def test_standard_user_cannot_change_status(self, staff_user):
        campaign = make_campaign()
        with pytest.raises(AuthUnauthorized):
            campaign_service.change_status(campaign.id, "finished", staff_user.id)

    def test_unknown_status(self, admin_user):
        campaign = make_campaign()
        with pytest.raises(ValidationError):
            campaign_service.change_status(campaign.id, "archived", admin_user.id)

    def test_delete_cascades_assignments(self, customers):
        campaign = make_campaign()
        campaign_service.assign_and_mark_sent(campaign.id, [c.id for c in customers])

        campaign_service.delete_campaign(campaign.id)
        assert db.session.query(CampaignCustomer).count() == 0
        with pytest.raises(NotFoundError):
            campaign_service.get_campaign(campaign.id)


# =============================================================================
# ASSIGNMENTS / STATS
# =============================================================================


class TestAssignments:

    def test_assign_marks_everyone_sent(self, customers):
        campaign = make_campaign()
        count = campaign_service.assign_and_mark_sent(campaign.id, [c.id for c in customers])
        assert count == 3

        rows = campaign_service.list_assignments(campaign.id)
        assert [r.customer_id for r in rows] == [c.id for c in customers]
        assert all(r.sent and r.sent_at is not None for r in rows)
        assert not any(r.responded for r in rows)

    def test_assign_twice_does_not_duplicate(self, customers):
        campaign = make_campaign()
        ids = [c.id for c in customers]
        campaign_service.assign_and_mark_sent(campaign.id, ids[:2])
        campaign_service.assign_and_mark_sent(campaign.id, ids)
        assert db.session.query(CampaignCustomer).filter_by(campaign_id=campaign.id).count() == 3

    def test_stats_and_responded(self, customers):
        campaign = make_campaign()
        campaign_service.assign_and_mark_sent(campaign.id, [c.id for c in customers])
        campaign_service.mark_responded(campaign.id, customers[0].id)

        stats = campaign_service.campaign_stats(campaign.id)
        assert stats["total_assigned"] == 3
        assert stats["total_sent"] == 3
        assert stats["total_responded"] == 1
        assert stats["response_rate"] == 33.3

        campaign_service.mark_responded(campaign.id, customers[0].id, responded=False)
        assert campaign_service.campaign_stats(campaign.id)["total_responded"] == 0

    def test_stats_without_sends(self, db_session):
        campaign = make_campaign()
        assert campaign_service.campaign_stats(campaign.id)["response_rate"] == 0.0

    def test_mark_responded_requires_assignment(self, customers):
        campaign = make_campaign()
        with pytest.raises(NotFoundError):
            campaign_service.mark_responded(campaign.id, customers[0].id)


# =============================================================================
# DEFAULT MESSAGE
# =============================================================================


class TestDefaultMessage:

    def test_full_template(self):
        message = campaign_service.default_message({
            "name": "Festival de Lúcuma",
            "description": "Todos los sabores de lúcuma",
            "discount_type": "percentage",
            "discount_value": 1500,
            "end_date": date(2025, 3, 31),
        })
        assert message.split("\n\n") == [
            "🍦 ¡PROMOCIÓN ESPECIAL! 🍦",
            "Festival de Lúcuma",
            "Todos los sabores de lúcuma",
            "🎁 15% de descuento",
            "📅 Válido hasta el 31/03/2025",
            "📍 Visítanos en Heladería Memimo - Huancayo",
            "¡No te lo pierdas!",
        ]

    def test_fixed_amount_and_string_date(self):
        message = campaign_service.default_message({
            "name": "Combo",
            "discount_type": "fixed_amount",
            "discount_value": 500,
            "end_date": "2025-12-24",
        })
        assert "🎁 S/ 5.00 de descuento" in message
        assert "📅 Válido hasta el 24/12/2025" in message

    def test_optional_lines_omitted(self):
        message = campaign_service.default_message({"name": "Solo nombre"})
        assert "🎁" not in message
        assert "📅" not in message
        assert message.count("\n\n") == 3

    def test_deterministic(self):
        fields = {"name": "Igual", "discount_type": "percentage", "discount_value": 1250}
        assert campaign_service.default_message(fields) == campaign_service.default_message(dict(fields))
        assert "12.5% de descuento" in campaign_service.default_message(fields)


# =============================================================================
# WIZARD
# =============================================================================


class TestCampaignWizard:

    def test_info_requires_name(self):
        wizard = CampaignWizard(customer_ids=[1, 2])
        with pytest.raises(WizardError, match="name is required"):
            wizard.next()
        wizard.update_fields(name="Verano")
        assert wizard.next() == WizardStep.CHANNEL

    def test_recipients_requires_selection(self):
        wizard = CampaignWizard(customer_ids=[1, 2])
        wizard.update_fields(name="Verano")
        wizard.next()
        wizard.next()
        assert wizard.step == WizardStep.RECIPIENTS
        with pytest.raises(WizardError, match="at least one customer"):
            wizard.next()

        wizard.toggle_customer(2)
        assert wizard.next() == WizardStep.REVIEW

    def test_back_is_unrestricted(self):
        wizard = CampaignWizard()
        wizard.update_fields(name="Verano")
        wizard.next()
        wizard.update_fields(name="")
        assert wizard.back() == WizardStep.INFO
        assert wizard.back() == WizardStep.INFO

    def test_toggle_and_select_all(self):
        wizard = CampaignWizard(customer_ids=[1, 2, 3])
        wizard.toggle_customer(2)
        wizard.toggle_customer(2)
        assert wizard.selected_customer_ids == []

        wizard.select_all()
        assert wizard.selected_customer_ids == [1, 2, 3]
        wizard.select_all()
        assert wizard.selected_customer_ids == []

    def test_unknown_field(self):
        with pytest.raises(WizardError):
            CampaignWizard().update_fields(colour="red")

    def test_message_follows_fields_until_edited(self):
        wizard = CampaignWizard()
        wizard.update_fields(name="Verano")
        assert "Verano" in wizard.message
        assert not wizard.message_edited

        wizard.update_fields(name="Invierno")
        assert "Invierno" in wizard.message

        wizard.edit_message("Texto propio")
        wizard.update_fields(name="Otoño")
        assert wizard.message == "Texto propio"
        assert wizard.message_edited

        wizard.reset_message()
        assert "Otoño" in wizard.message

    def test_confirm_only_from_review(self):
        wizard = CampaignWizard()
        with pytest.raises(WizardError):
            wizard.confirm(FakeDispatcher(), user_id=None)

    def test_confirm_success_is_terminal(self):
        wizard = CampaignWizard(customer_ids=[7])
        wizard.update_fields(name="Verano", channel="whatsapp")
        wizard.next()
        wizard.next()
        wizard.toggle_customer(7)
        wizard.next()
        wizard.edit_message("Hola")

        dispatcher = FakeDispatcher()
        assert wizard.confirm(dispatcher, user_id=5) == "dispatched"
        assert wizard.step == WizardStep.CREATED
        assert dispatcher.calls[0]["customer_ids"] == [7]
        assert dispatcher.calls[0]["message"] == "Hola"
        assert dispatcher.calls[0]["campaign_id"] is None

        with pytest.raises(WizardError):
            wizard.back()

    def test_confirm_failure(self):
        wizard = CampaignWizard(customer_ids=[7])
        wizard.update_fields(name="Verano")
        wizard.next()
        wizard.next()
        wizard.toggle_customer(7)
        wizard.next()

        with pytest.raises(RuntimeError):
            wizard.confirm(FakeDispatcher(error=RuntimeError("boom")), user_id=None)
        assert wizard.step == WizardStep.FAILED
        assert str(wizard.error) == "boom"

    def test_editing_sends_to_nobody(self, db_session):
        campaign = make_campaign(end_date="2025-06-30")
        wizard = CampaignWizard(customer_ids=[1], campaign=campaign)
        assert wizard.editing
        assert wizard.fields["end_date"] == "2025-06-30"

        wizard.next()
        wizard.next()
        wizard.toggle_customer(1)
        wizard.next()

        dispatcher = FakeDispatcher()
        wizard.confirm(dispatcher, user_id=None)
        assert dispatcher.calls[0]["customer_ids"] == []
        assert dispatcher.calls[0]["campaign_id"] == campaign.id

    def test_edit_without_changes_round_trips(self, app, customers):
        campaign = make_campaign(
            description="2x1 en conos",
            discount_type="percentage",
            discount_value=1500,
            start_date="2025-03-01",
            end_date="2025-03-31",
        )
        before = campaign.to_dict()

        wizard = CampaignWizard(customer_ids=[c.id for c in customers], campaign=campaign)
        wizard.next()
        wizard.next()
        wizard.toggle_customer(customers[0].id)
        wizard.next()
        result = wizard.confirm(CampaignDispatcher(app.config), user_id=None)

        after = result.campaign.to_dict()
        before.pop("updated_at")
        after.pop("updated_at")
        assert after == before
        assert db.session.query(CampaignCustomer).count() == 0

    def test_run_wizard_applies_step_rules(self):
        with pytest.raises(WizardError, match="name is required"):
            run_wizard({"fields": {"name": ""}, "customer_ids": [1]}, FakeDispatcher(), None, [1])

        with pytest.raises(WizardError, match="at least one customer"):
            run_wizard({"fields": {"name": "Verano"}, "customer_ids": []}, FakeDispatcher(), None, [1])

    def test_run_wizard_deduplicates_recipients(self):
        dispatcher = FakeDispatcher()
        run_wizard(
            {"fields": {"name": "Verano", "channel": "facebook"}, "customer_ids": [3, 3, 4]},
            dispatcher, None, [3, 4],
        )
        assert dispatcher.calls[0]["customer_ids"] == [3, 4]
