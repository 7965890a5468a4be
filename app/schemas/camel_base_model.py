import uuid
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases and automatic serialization.

    This model maps between camelCase (used in client requests/responses)
    and snake_case (used internally in Python):

    - Input: camelCase or snake_case keys are both accepted.
    - Output: call `model_dump(by_alias=True)` to serialize fields back to camelCase.
    - Auto-serialization: UUIDs, Enums, dates and Decimals become JSON-safe values.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*")
    def serialize_any(self, value):
        """Global serializer for all fields"""

        if isinstance(value, uuid.UUID):
            return str(value)

        if isinstance(value, Enum):
            return value.value

        # datetime must come before the date check
        if isinstance(value, datetime):
            return value.isoformat()

        if isinstance(value, date):
            return value.isoformat()

        # Money and hours stay exact on the wire
        if isinstance(value, Decimal):
            return str(value)

        if isinstance(value, (list, tuple, set)):
            return [self.serialize_any(item) for item in value]

        if isinstance(value, dict):
            return {key: self.serialize_any(val) for key, val in value.items()}

        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True)

        return value
