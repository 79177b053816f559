# coursepay/models.py
import enum

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey,
    Integer, String, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    CANCELLED = "CANCELLED"

class TransactionType(str, enum.Enum):
    REVENUE = "REVENUE"
    WITHDRAWAL = "WITHDRAWAL"

class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Read model owned by the course module; this service only queries it.

class Instructor(Base):
    __tablename__ = "instructors"

    user_id = Column(String(64), primary_key=True)
    email = Column(String, nullable=True)
    organization = Column(String, nullable=True)

    wallet = relationship("Wallet", back_populates="instructor", uselist=False)

class Course(Base):
    __tablename__ = "courses"

    id = Column(String(64), primary_key=True)
    instructor_id = Column(String(64), ForeignKey("instructors.user_id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    price = Column(BigInteger, nullable=False)  # minor units
    is_published = Column(Boolean, nullable=False, default=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_code = Column(BigInteger, nullable=False)
    course_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    instructor_id = Column(String(64), nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_link_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("order_code", name="orders_order_code_unique"),
        CheckConstraint("amount > 0", name="orders_amount_positive"),
    )

class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instructor_id = Column(String(64), ForeignKey("instructors.user_id"), nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    instructor = relationship("Instructor", back_populates="wallet")
    transactions = relationship("LedgerTransaction", back_populates="wallet")

    __table_args__ = (
        UniqueConstraint("instructor_id", name="wallets_instructor_unique"),
        CheckConstraint("balance >= 0", name="wallets_balance_nonneg"),
    )

class LedgerTransaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    status = Column(Enum(TransactionStatus), nullable=False)
    # Set on REVENUE rows only; unique so an order can credit a wallet once
    order_code = Column(BigInteger, nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    wallet = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("order_code", name="transactions_order_code_unique"),
        CheckConstraint("amount > 0", name="transactions_amount_positive"),
    )

class EnrolledCourse(Base):
    __tablename__ = "enrolled_courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    learner_id = Column(String(64), nullable=False)
    course_id = Column(String(64), nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    enrolled_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("learner_id", "course_id", name="enrolled_learner_course_unique"),
    )

class PurchaseHistory(Base):
    __tablename__ = "purchase_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    learner_id = Column(String(64), nullable=False, index=True)
    course_id = Column(String(64), nullable=False)
    price = Column(BigInteger, nullable=False)
    order_code = Column(BigInteger, nullable=True)
    purchased_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
