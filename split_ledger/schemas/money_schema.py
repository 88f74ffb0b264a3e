from pydantic import BaseModel, ConfigDict
from decimal import Decimal


class Money(BaseModel):
    """An amount tagged with its currency code.

    Build instances through ``create_money`` so the amount is rounded to the
    currency's precision and checked for negativity.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str
