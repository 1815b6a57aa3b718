# Overview: Service-layer operations for campaign dispatch (fan-out of one message to many customers).

"""
Campaign Dispatch Service

WHY: Sending is intentionally sequential. Providers rate-limit us, so the
SendPipeline spaces sends by a fixed interval instead of sleeping ad hoc
inside each channel. The pipeline never runs two sends at once.

DISPATCH ORDER (CampaignDispatcher.dispatch):
1. Editing an existing campaign: validate and save the fields. Nothing is
   sent. Done.
2. Validate fields and recipients; build the channel and check its
   credentials (ChannelNotConfigured) before anything is written.
3. Persist the new campaign (status=active).
4. Send to each recipient through the pipeline. A failed recipient is
   counted and logged; the loop moves on. No retry.
5. Record every selected recipient as assigned with sent=True, whether or
   not their own send succeeded. "Assigned" is not "delivered".

An in-flight dispatch cannot be cancelled; it runs to completion.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

import httpx
from flask import current_app

from ..models import Campaign, CAMPAIGN_CHANNELS
from ..validation import ValidationError
from . import campaign_service
from . import customer_service
from .channels import Channel, DeliveryOutcome, build_channel


class SendPipeline:
    """
    Delay-gated sequential queue.

    The first item runs immediately; every later item waits until at least
    `interval` seconds have passed since the previous item finished.
    sleep and clock are injectable so tests can run without waiting.
    """

    def __init__(
        self,
        interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval is None or interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._last_finished: float | None = None

    def wait_turn(self) -> None:
        if self._last_finished is None or self.interval <= 0:
            return
        remaining = self.interval - (self._clock() - self._last_finished)
        if remaining > 0:
            self._sleep(remaining)

    def run(self, items: Iterable, func: Callable) -> list:
        results = []
        for item in items:
            self.wait_turn()
            try:
                results.append(func(item))
            finally:
                self._last_finished = self._clock()
        return results


@dataclass
class DispatchResult:
    """Summary handed back to the wizard once a dispatch finishes."""
    campaign: Campaign
    mode: str  # "created" or "updated"
    channel: str
    simulated: bool = False
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    assigned: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def failures_with_reason(self, reason: str) -> int:
        return sum(1 for o in self.outcomes if not o.success and o.error == reason)

    def to_dict(self) -> dict:
        return {
            "campaign": self.campaign.to_dict(),
            "mode": self.mode,
            "channel": self.channel,
            "simulated": self.simulated,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "assigned": self.assigned,
            "details": [o.to_dict() for o in self.outcomes],
        }


class CampaignDispatcher:
    """
    Runs the campaign fan-out.

    config is the Flask config mapping (or any dict with the same keys).
    http_client, sleep and clock are passed through to the channels and
    the pipeline.
    """

    def __init__(
        self,
        config: dict,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.http_client = http_client
        self.sleep = sleep
        self.clock = clock

    @classmethod
    def from_app(cls, app=None) -> "CampaignDispatcher":
        app = app or current_app
        # Tests and embedders may register a shared httpx.Client here
        return cls(app.config, http_client=app.extensions.get("campaign_http_client"))

    def build_channel(self, name: str, campaign_name: str) -> Channel:
        return build_channel(
            name,
            self.config,
            campaign_name=campaign_name,
            http_client=self.http_client,
            sleep=self.sleep,
        )

    def build_pipeline(self, channel: Channel) -> SendPipeline:
        interval = self.config.get("CAMPAIGN_SEND_INTERVAL_SECONDS", 1.0) if channel.throttled else 0.0
        return SendPipeline(interval or 0.0, sleep=self.sleep, clock=self.clock)

    def dispatch(
        self,
        fields: dict,
        customer_ids: list[int],
        message: str | None,
        user_id: int | None,
        campaign_id: int | None = None,
    ) -> DispatchResult:
        logger = current_app.logger

        if campaign_id is not None:
            campaign = campaign_service.update_campaign(campaign_id, fields)
            logger.info("Campaign %s updated by user %s (no send)", campaign.id, user_id)
            return DispatchResult(campaign=campaign, mode="updated", channel=campaign.channel)

        patch = campaign_service.validate_campaign_fields(fields, partial=False)

        recipient_ids = list(dict.fromkeys(customer_ids or []))
        if not recipient_ids:
            raise ValidationError("Select at least one customer")
        customers = customer_service.get_customers_by_ids(recipient_ids)

        message = (message or "").strip() or campaign_service.default_message(patch)

        channel = self.build_channel(patch["channel"], patch["name"])
        try:
            channel.ensure_configured()

            campaign = campaign_service.create_campaign(patch, user_id=user_id)
            logger.info(
                "Dispatching campaign %s via %s to %d customers",
                campaign.id, channel.name, len(customers),
            )
            if channel.name == "telegram":
                logger.warning(
                    "Campaign %s: Telegram messages for all %d customers go to the configured chat",
                    campaign.id, len(customers),
                )

            pipeline = self.build_pipeline(channel)
            outcomes = pipeline.run(customers, lambda customer: channel.send(customer, message))
            channel.finish_batch()
        finally:
            channel.close()

        for outcome in outcomes:
            if not outcome.success:
                logger.info(
                    "Campaign %s: send to customer %s failed: %s",
                    campaign.id, outcome.customer_id, outcome.error,
                )

        assigned = campaign_service.assign_and_mark_sent(campaign.id, recipient_ids)

        result = DispatchResult(
            campaign=campaign,
            mode="created",
            channel=channel.name,
            simulated=not channel.real,
            outcomes=outcomes,
            assigned=assigned,
        )
        logger.info(
            "Campaign %s dispatched: %d succeeded, %d failed, %d assigned",
            campaign.id, result.succeeded, result.failed, assigned,
        )
        return result


def channel_statuses(config: dict) -> list[dict]:
    """Configuration status of every campaign channel, for the wizard's channel step."""
    statuses = []
    for name in sorted(CAMPAIGN_CHANNELS):
        channel = build_channel(name, config)
        statuses.append(channel.status().to_dict())
    return statuses
