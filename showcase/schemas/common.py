from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from showcase.services.fees import round2

# Money leaves the API as a fixed two-decimal string, e.g. "242.50".
Money = Annotated[Decimal, PlainSerializer(lambda value: format(round2(value), "f"), return_type=str)]


class CamelRequest(BaseModel):
    """Request body accepting both camelCase (browser client) and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
