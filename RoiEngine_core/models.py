# RoiEngine_core/models.py
from __future__ import annotations
from typing           import Optional
from datetime         import date, datetime
from decimal          import Decimal
from sqlmodel         import SQLModel, Field
from sqlalchemy       import Column, Date, UniqueConstraint

from utils.calendar_days import utcnow


CASH_TICKER = "CASH"


class PriceSource:
    """Origin of a cached close."""
    MARKET = "market"
    CASH = "cash"

    @classmethod
    def for_ticker(cls, ticker: str) -> str:
        return cls.CASH if ticker == CASH_TICKER else cls.MARKET

    @classmethod
    def all(cls) -> list[str]:
        return [cls.MARKET, cls.CASH]


class AssetPriceDaily(SQLModel, table=True):
    """
    One closing price per symbol and calendar day.

    Rows are upserted by the price cache and never deleted; a re-ingested
    close overwrites the stored one.
    """
    __tablename__  = "asset_price_daily"
    __table_args__ = (
      UniqueConstraint(
        "symbol", "date",
        name="uix_asset_price_daily_symbol_date"
      ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str       = Field(index=True, max_length=20, description="Price ticker")

    # Python attribute price_date -> DB column "date"
    price_date: date = Field(
        sa_column=Column("date", Date, index=True, nullable=False),
        description="Calendar day (UTC)",
    )

    close: Decimal  = Field(max_digits=38, decimal_places=18, description="Closing price")
    source: str     = Field(default=PriceSource.MARKET, max_length=10, description="market | cash")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
