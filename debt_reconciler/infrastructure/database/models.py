"""SQLAlchemy ORM models for the payment ledger and derived debt summaries"""

import uuid
from sqlalchemy import Column, String, BigInteger, Date, DateTime, Integer, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Payment(Base):
    """Ledger entry from a bank statement, cash sheet or manual cash entry"""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Not unique: concurrent inserts are tolerated and cleaned up by deduplication
    fingerprint = Column(Text, nullable=False, index=True)
    customer_id = Column(Text, nullable=False, index=True)
    customer_name = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False, default=0)
    payment_date = Column(Date, nullable=False, index=True)
    source = Column(String(32), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    row_index = Column(Integer, nullable=True)
    uploaded_at = Column(DateTime, nullable=False, server_default=func.now())


class CustomerDebtSummary(Base):
    """Read-optimized per-customer balance, overwritten by every aggregation job"""

    __tablename__ = "customer_debt_summary"

    customer_id = Column(Text, primary_key=True)
    customer_name = Column(Text, nullable=True)
    total_sales_cents = Column(BigInteger, nullable=False, default=0)
    sale_count = Column(Integer, nullable=False, default=0)
    last_sale_date = Column(Date, nullable=True)
    total_bank_payments_cents = Column(BigInteger, nullable=False, default=0)
    payment_count = Column(Integer, nullable=False, default=0)
    last_payment_date = Column(Date, nullable=True)
    total_cash_payments_cents = Column(BigInteger, nullable=False, default=0)
    cash_payment_count = Column(Integer, nullable=False, default=0)
    last_cash_payment_date = Column(Date, nullable=True)
    starting_debt_cents = Column(BigInteger, nullable=False, default=0)
    starting_debt_date = Column(Date, nullable=True)
    current_debt_cents = Column(BigInteger, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, server_default=func.now())
    update_source = Column(Text, nullable=False, default="")
