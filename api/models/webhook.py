"""Pydantic models for provider webhook payloads and ledger responses."""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class StripeWebhookEvent(BaseModel):
    """Stripe event envelope: id and type at the top level."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: dict[str, Any] = {}

    @property
    def event_id(self) -> str:
        return self.id

    @property
    def event_type(self) -> str:
        return self.type


class ResendEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    email_id: str = Field(min_length=1)


class ResendWebhookEvent(BaseModel):
    """
    Resend event.

    One email produces several events (sent, delivered, bounced), so the
    ledger key is the email id plus the event type.
    """
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    data: ResendEventData

    @property
    def event_id(self) -> str:
        return f"{self.data.email_id}:{self.type}"

    @property
    def event_type(self) -> str:
        return self.type


class TwilioStatusCallback(BaseModel):
    """
    Twilio message status callback (MessageSid/SmsSid, MessageStatus/SmsStatus).

    Twilio calls back once per status change of a message; the ledger key is
    the message sid plus the status.
    """
    model_config = ConfigDict(extra="allow")

    sid: str = Field(min_length=1, validation_alias=AliasChoices("MessageSid", "SmsSid"))
    status: str = Field(
        min_length=1, validation_alias=AliasChoices("MessageStatus", "SmsStatus")
    )

    @property
    def event_id(self) -> str:
        return f"{self.sid}:{self.status}"

    @property
    def event_type(self) -> str:
        return self.status


PROVIDER_MODELS: dict[str, type[BaseModel]] = {
    "stripe": StripeWebhookEvent,
    "resend": ResendWebhookEvent,
    "twilio": TwilioStatusCallback,
}


class WebhookResponse(BaseModel):
    """Answer to the provider; 200 stops redelivery."""

    status: Literal["processed", "duplicate", "skipped"]
    ledger_id: str | None = None


class ProviderStats(BaseModel):
    provider: str
    total_events: int
    processed_events: int
    failed_events: int
    pending_events: int
    skipped_events: int
    success_rate: float
    avg_processing_ms: float | None = None


class LedgerStatsResponse(BaseModel):
    hours: int
    providers: list[ProviderStats]
