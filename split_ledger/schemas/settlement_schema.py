from pydantic import BaseModel
from decimal import Decimal


class SettlementSuggestion(BaseModel):
    payer_id: str
    receiver_id: str
    amount: Decimal
