"""Pydantic schemas for requests.

Only request bodies live here.  Responses are plain dicts built from the
snapshot models and the display helpers.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import Priority


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class TicketRequest(RequestModel):
    # Reception desk rule: identity documents have at least 4 characters.
    subject_id: str = Field(min_length=4)
    priority: Priority = Priority.normal


class ModuleActionRequest(RequestModel):
    action: str


class BulkModulesRequest(RequestModel):
    active: bool
