# =============================================================================
# core/models/common.py - Shared Schema Base
# =============================================================================
# Request bodies come from a JavaScript frontend that sends camelCase keys
# (customerName, guestsCount). Models accept both camelCase and snake_case
# and always serialize as snake_case.
# =============================================================================

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Base for request bodies: camelCase aliases, snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
