"""Campaign factory for test data generation."""

from polyfactory import Use

from src.mailflow.models import Campaign, CampaignStatus
from tests.factories.base import BaseFactory, generate_uuid, utc_now


class CampaignFactory(BaseFactory):
    """Factory for generating Campaign test data."""

    __model__ = Campaign

    id = Use(generate_uuid)
    tenant_id = None  # Must be set explicitly
    list_id = None  # FK - set to send to a list, else all active subscribers
    name = "Spring launch"
    subject = "Hello {{firstName}}"
    content = "<p>Hi {{firstName}}, we launched.</p>"
    plain_text_content = None
    from_email = None
    from_name = None
    reply_to_email = None
    status = CampaignStatus.DRAFT.value
    sent_at = None
    total_sent = 0
    total_delivered = 0
    total_opened = 0
    total_clicked = 0
    total_bounced = 0
    total_complained = 0
    total_unsubscribed = 0
    created_at = Use(utc_now)
