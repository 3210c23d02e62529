"""
Request schemas for the lookup and integration endpoints.
Fields are optional so missing values reach the handlers, which answer
with the service's own 400 envelope instead of a framework 422.
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class PhoneLookupRequest(BaseModel):
    """Voice agent pre-call context lookup."""
    phone_number: Optional[str] = None


class RetellProxyRequest(BaseModel):
    """Dashboard call forwarded to the Retell REST API."""
    endpoint: Optional[str] = None
    method: str = "GET"
    body: Optional[Any] = None


class SmsSendRequest(BaseModel):
    """Outbound SMS from a dashboard follow-up action."""
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    message: Optional[str] = None
    lead_id: Optional[str] = Field(default=None, alias="leadId")
    action_id: Optional[str] = Field(default=None, alias="actionId")

    model_config = {"populate_by_name": True}
