"""Test factories for generating test data.

Re-exports all factories for convenient imports:
    from tests.factories import SubscriberFactory, node, connect, ...
"""

from tests.factories.auth import DEFAULT_TEST_API_KEY, ApiKeyFactory
from tests.factories.automation import AutomationFactory
from tests.factories.base import BaseFactory, generate_uuid, persist, utc_now
from tests.factories.campaign import CampaignFactory
from tests.factories.subscriber import (
    ListMembershipFactory,
    MailingListFactory,
    SubscriberFactory,
)
from tests.factories.workflows import connect, drip_graph, node

__all__ = [
    # Base
    "BaseFactory",
    "generate_uuid",
    "persist",
    "utc_now",
    # Models
    "ApiKeyFactory",
    "AutomationFactory",
    "CampaignFactory",
    "ListMembershipFactory",
    "MailingListFactory",
    "SubscriberFactory",
    "DEFAULT_TEST_API_KEY",
    # Workflow graphs
    "connect",
    "drip_graph",
    "node",
]
