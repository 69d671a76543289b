"""SQLAlchemy ORM models for the installment ledger"""

import uuid
from sqlalchemy import Column, String, Date, DateTime, Integer, Numeric, Text, Uuid, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from installment_ledger.domain.identity import IDENTITY_LENGTH

Base = declarative_base()


class PaymentRecord(Base):
    """One payment of a purchase: completed, projected or cancelled"""

    __tablename__ = "installment_payment"
    __table_args__ = (
        # Metadata bucket used by duplicate, projection and orphan lookups
        Index(
            "ix_installment_payment_bucket",
            "business_id",
            "card_id",
            "deal_date",
            "payment_total",
            "payment_index",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Text, nullable=False, index=True)
    card_id = Column(Text, nullable=False)
    deal_date = Column(Date, nullable=False)
    original_amount = Column(Numeric(12, 2), nullable=False)
    original_currency = Column(String(3), nullable=False)
    exchange_rate = Column(Numeric(10, 6), nullable=True)
    canonical_amount = Column(Numeric(12, 2), nullable=False)
    payment_type = Column(Text, nullable=False, default="installment")
    status = Column(Text, nullable=False)
    group_identity = Column(String(IDENTITY_LENGTH), nullable=True, index=True)
    payment_index = Column(Integer, nullable=True)
    payment_total = Column(Integer, nullable=True)
    payment_identity = Column(String(IDENTITY_LENGTH), nullable=False, unique=True)
    actual_charge_date = Column(Date, nullable=True)
    projected_charge_date = Column(Date, nullable=True)
    source_batch = Column(Text, nullable=False)
    source_row = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def charge_date(self):
        """Date the payment was (or is expected to be) charged"""
        return self.actual_charge_date or self.projected_charge_date or self.deal_date
