"""Automation factory for test data generation."""

from polyfactory import Use

from src.mailflow.models import Automation, AutomationStatus
from tests.factories.base import BaseFactory, generate_uuid, utc_now


class AutomationFactory(BaseFactory):
    """Factory for generating Automation test data.

    Pass ``workflow_data`` (see ``tests.factories.workflows``) or legacy
    ``workflow_steps``.
    """

    __model__ = Automation

    id = Use(generate_uuid)
    tenant_id = None  # Must be set explicitly
    name = Use(lambda: f"Automation {generate_uuid().hex[-6:]}")
    status = AutomationStatus.ACTIVE.value
    workflow_data = None
    workflow_steps = None
    created_at = Use(utc_now)
    updated_at = Use(utc_now)

    @classmethod
    def draft(cls, **kwargs):
        """Create a draft automation."""
        return cls.build(status=AutomationStatus.DRAFT.value, **kwargs)
