"""
Database Models - Contoso Source Tables

The two read-only source tables the cohort analytics consume:

- Sale: one row per order line
- Customer: one row per customer

The analytics never write to these tables. The models exist so the schema
can be created for local databases and tests.
"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class Customer(Base):
    """
    Customer Dimension

    Static reference data, one row per customer.
    """
    __tablename__ = "customer"

    customerkey: Mapped[int] = mapped_column(Integer, primary_key=True)
    countryfull: Mapped[Optional[str]] = mapped_column(String(100))
    age: Mapped[Optional[int]] = mapped_column(Integer)
    givenname: Mapped[Optional[str]] = mapped_column(String(150))
    surname: Mapped[Optional[str]] = mapped_column(String(150))


class Sale(Base):
    """
    Sales Fact

    One order line. Several lines share an order key, and a customer may
    place several orders on the same date.
    """
    __tablename__ = "sales"

    orderkey: Mapped[int] = mapped_column(Integer, primary_key=True)
    linenumber: Mapped[int] = mapped_column(Integer, primary_key=True, default=0)
    orderdate: Mapped[date] = mapped_column(Date, nullable=False)
    customerkey: Mapped[int] = mapped_column(Integer, ForeignKey("customer.customerkey"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    netprice: Mapped[float] = mapped_column(Float, nullable=False)
    exchangerate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    __table_args__ = (
        Index("idx_sales_customer_date", "customerkey", "orderdate"),
    )
