# Overview: Four-step campaign wizard state machine (Info -> Channel -> Recipients -> Review).

"""
Campaign Wizard

Holds the in-progress campaign while the operator walks the four steps:

    INFO -> CHANNEL -> RECIPIENTS -> REVIEW -> CREATED | FAILED

Forward rules:
- leaving INFO needs a non-empty name
- leaving RECIPIENTS needs at least one selected customer
Going back is always allowed (except out of a terminal state).

The message shown on REVIEW defaults to campaign_service.default_message()
and follows the fields as they change. Once edited, the edited text wins
until reset_message() is called.

The wizard is plain in-memory state. Discarding the object discards the
campaign; nothing is written until confirm().
"""

from __future__ import annotations

import enum

from ..models import Campaign
from ..validation import ValidationError
from . import campaign_service
from .dispatch_service import CampaignDispatcher, DispatchResult


class WizardStep(enum.IntEnum):
    INFO = 1
    CHANNEL = 2
    RECIPIENTS = 3
    REVIEW = 4
    CREATED = 5
    FAILED = 6


TERMINAL_STEPS = {WizardStep.CREATED, WizardStep.FAILED}

FIELD_NAMES = (
    "name", "description", "discount_type", "discount_value",
    "start_date", "end_date", "channel",
)


class WizardError(ValidationError):
    """Raised for a blocked or out-of-order wizard transition."""


def blank_fields() -> dict:
    fields = {name: None for name in FIELD_NAMES}
    fields["name"] = ""
    fields["channel"] = "telegram"
    return fields


class CampaignWizard:
    def __init__(self, customer_ids: list[int] | None = None, campaign: Campaign | None = None):
        """
        customer_ids: every customer the recipients step can offer.
        campaign: an existing campaign to edit instead of creating one.
        """
        self.available_customer_ids = list(customer_ids or [])
        self.campaign_id = campaign.id if campaign else None
        self.fields = campaign.editable_fields() if campaign else blank_fields()
        self.selected_customer_ids: list[int] = []
        self.step = WizardStep.INFO
        self.result: DispatchResult | None = None
        self.error: Exception | None = None
        self._custom_message: str | None = None

    @property
    def editing(self) -> bool:
        return self.campaign_id is not None

    # -- fields -------------------------------------------------------------

    def update_fields(self, **values) -> None:
        self._require_open()
        unknown = sorted(set(values) - set(FIELD_NAMES))
        if unknown:
            raise WizardError(f"Unknown campaign field: {', '.join(unknown)}")
        self.fields.update(values)

    # -- recipients ---------------------------------------------------------

    def toggle_customer(self, customer_id: int) -> None:
        self._require_open()
        if customer_id in self.selected_customer_ids:
            self.selected_customer_ids.remove(customer_id)
        else:
            self.selected_customer_ids.append(customer_id)

    def select_all(self) -> None:
        """Select every available customer, or clear the selection if all are already selected."""
        self._require_open()
        if self.available_customer_ids and set(self.selected_customer_ids) >= set(self.available_customer_ids):
            self.selected_customer_ids = []
        else:
            self.selected_customer_ids = list(self.available_customer_ids)

    # -- message ------------------------------------------------------------

    @property
    def message(self) -> str:
        if self._custom_message is not None:
            return self._custom_message
        return campaign_service.default_message(self.fields)

    @property
    def message_edited(self) -> bool:
        return self._custom_message is not None

    def edit_message(self, text: str) -> None:
        self._require_open()
        self._custom_message = text

    def reset_message(self) -> None:
        self._require_open()
        self._custom_message = None

    # -- navigation ---------------------------------------------------------

    def can_advance(self) -> bool:
        if self.step == WizardStep.INFO:
            return bool((self.fields.get("name") or "").strip())
        if self.step == WizardStep.CHANNEL:
            return bool(self.fields.get("channel"))
        if self.step == WizardStep.RECIPIENTS:
            return len(self.selected_customer_ids) > 0
        return False

    def next(self) -> WizardStep:
        self._require_open()
        if self.step == WizardStep.REVIEW:
            raise WizardError("Use confirm() to finish the wizard")
        if not self.can_advance():
            if self.step == WizardStep.INFO:
                raise WizardError("Campaign name is required")
            if self.step == WizardStep.RECIPIENTS:
                raise WizardError("Select at least one customer")
            raise WizardError("Choose a channel")
        self.step = WizardStep(self.step + 1)
        return self.step

    def back(self) -> WizardStep:
        self._require_open()
        if self.step > WizardStep.INFO:
            self.step = WizardStep(self.step - 1)
        return self.step

    def confirm(self, dispatcher: CampaignDispatcher, user_id: int | None) -> DispatchResult:
        """
        Save (editing) or create and send (new campaign).

        Any failure moves the wizard to FAILED and is re-raised for the
        caller to report.
        """
        self._require_open()
        if self.step != WizardStep.REVIEW:
            raise WizardError("The wizard is not on the review step")

        try:
            self.result = dispatcher.dispatch(
                fields=dict(self.fields),
                customer_ids=[] if self.editing else list(self.selected_customer_ids),
                message=self.message,
                user_id=user_id,
                campaign_id=self.campaign_id,
            )
        except Exception as e:
            self.error = e
            self.step = WizardStep.FAILED
            raise

        self.step = WizardStep.CREATED
        return self.result

    def _require_open(self) -> None:
        if self.step in TERMINAL_STEPS:
            raise WizardError("The wizard has already finished")


def run_wizard(
    payload: dict,
    dispatcher: CampaignDispatcher,
    user_id: int | None,
    customer_ids: list[int],
    campaign: Campaign | None = None,
) -> DispatchResult:
    """
    Drive a wizard from a single request payload.

    payload: {"fields": {...}, "customer_ids": [...], "message": str | None}
    Every step rule applies exactly as for an interactive walk, including
    the recipients rule when an existing campaign is being edited.
    """
    wizard = CampaignWizard(customer_ids=customer_ids, campaign=campaign)

    fields = payload.get("fields") or {}
    if not isinstance(fields, dict):
        raise WizardError("fields must be an object")
    wizard.update_fields(**fields)
    wizard.next()
    wizard.next()

    selected = payload.get("customer_ids") or []
    if not isinstance(selected, list):
        raise WizardError("customer_ids must be a list")
    for customer_id in dict.fromkeys(selected):
        wizard.toggle_customer(customer_id)
    wizard.next()

    message = payload.get("message")
    if message:
        wizard.edit_message(message)

    return wizard.confirm(dispatcher, user_id)
