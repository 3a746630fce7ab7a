from pydantic import BaseModel, ConfigDict, Field

from coinfeed.markets.pairs import PairExchangeId


class PriceUpdateEvent(BaseModel):
    """One accepted tick, handed to the sink and then discarded."""

    model_config = ConfigDict(
        frozen=True,
        validate_assignment=True,
        extra="forbid",
    )

    pair_exchange_id: PairExchangeId = Field(description="Canonical pair exchange")
    price: float = Field(description="Last trade price", ge=0)
