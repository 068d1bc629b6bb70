"""SQLAlchemy ORM models for the tenant-scoped receivables ledger"""

import uuid
from sqlalchemy import BigInteger, Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class CustomerRecord(Base):
    """Debtor master record"""

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=False, default="Alpha")
    credit_limit_cents = Column(BigInteger, nullable=True)
    opening_balance_cents = Column(BigInteger, nullable=False, default=0)
    payment_terms_days = Column(Integer, nullable=False, default=0)
    category_manual_override = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    invoices = relationship("InvoiceRecord", back_populates="customer", cascade="all, delete-orphan")
    receipts = relationship("ReceiptRecord", back_populates="customer", cascade="all, delete-orphan")


class InvoiceRecord(Base):
    """Posted sales invoice"""

    __tablename__ = "invoices"
    __table_args__ = (Index("ix_invoices_tenant_customer", "tenant_id", "customer_id"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    invoice_number = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    invoice_date = Column(Date, nullable=False)
    payment_terms_days = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("CustomerRecord", back_populates="invoices")


class ReceiptRecord(Base):
    """Money received from a customer, optionally against one invoice"""

    __tablename__ = "receipts"
    __table_args__ = (Index("ix_receipts_tenant_customer", "tenant_id", "customer_id"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    date = Column(Date, nullable=False)
    linked_invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)
    receipt_type = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("CustomerRecord", back_populates="receipts")


class FollowUpRecord(Base):
    """Collection call/visit log entry with the next scheduled date"""

    __tablename__ = "follow_ups"
    __table_args__ = (Index("ix_follow_ups_tenant_customer", "tenant_id", "customer_id"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    follow_up_at = Column(DateTime, nullable=False)
    next_follow_up_at = Column(DateTime, nullable=True)
    status = Column(Text, nullable=False, default="Pending")
    remarks = Column(Text, nullable=True)


class CategoryRuleRecord(Base):
    """Tier rule; null bounds are open-ended"""

    __tablename__ = "category_rules"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    priority = Column(Integer, nullable=False)
    min_balance_cents = Column(BigInteger, nullable=True)
    max_balance_cents = Column(BigInteger, nullable=True)
    min_overdue_days = Column(Integer, nullable=True)
    max_overdue_days = Column(Integer, nullable=True)
    target_category = Column(Text, nullable=False)


class CategoryChangeLogRecord(Base):
    """Audit row written with every automatic category change"""

    __tablename__ = "category_change_log"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    previous_category = Column(Text, nullable=False)
    new_category = Column(Text, nullable=False)
    rule_priority = Column(Integer, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
