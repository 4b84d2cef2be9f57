"""
Market Data Models
──────────────────
Tables:
  products        Tracked products (HS code, category, origin)
  price_data      Daily price series per product
  tariff_data     Tariff rate history per product (by effective date)
  freight_index   Freight index series per shipping route
  fx_rates        Exchange rate series per currency pair

These tables are populated by ingestion jobs outside this service; the
detectors only read them.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.sql import func

from tradewatch.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    hs_code = Column(String(12), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    category = Column(String(100), nullable=True, index=True)   # steel, chemicals, textiles, ...
    origin_country = Column(String(3), nullable=True)          # ISO-3 of main sourcing country
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Product({self.id}, hs={self.hs_code})>"


class PriceData(Base):
    __tablename__ = "price_data"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False, index=True)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    date = Column(Date, nullable=False, index=True)
    source = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TariffData(Base):
    __tablename__ = "tariff_data"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False, index=True)
    rate = Column(Float, nullable=False)                       # ad-valorem rate in percent
    effective_date = Column(Date, nullable=False, index=True)
    source = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FreightIndex(Base):
    __tablename__ = "freight_index"

    id = Column(Integer, primary_key=True, index=True)
    route = Column(String(100), nullable=False, index=True)     # e.g. "Shanghai-Port Klang"
    index_value = Column(Float, nullable=False)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FxRate(Base):
    __tablename__ = "fx_rates"

    id = Column(Integer, primary_key=True, index=True)
    currency_pair = Column(String(7), nullable=False, index=True)  # e.g. "USD/MYR"
    rate = Column(Float, nullable=False)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
