"""Request payloads accepted by the box service.

Fields arrive in camelCase from the request layer. Numeric and date fields
are left as Any; BoxService parses them and raises InvalidInput or
InvalidInvestmentConfig for bad values.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BoxCreate(_Payload):
    name: str = ""
    is_emergency: bool = False
    investment_type: str = "none"
    cdi_percentage: Any = None
    cdi_annual_rate: Any = None
    auto_cdi: bool = False
    initial_value: Any = None
    application_date: Any = None


class BoxUpdate(_Payload):
    """Partial update: omitted fields keep their stored values."""

    name: str | None = None
    is_emergency: bool | None = None
    investment_type: str | None = None
    cdi_percentage: Any = None
    cdi_annual_rate: Any = None
    auto_cdi: bool | None = None


class Movement(_Payload):
    value: Any = None
    type: Any = None
