from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    Text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from bizdata.core.database import Base


# =========================
# Customer
# =========================
class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    company = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    created_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    sales = relationship(
        "Sale",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# Product (inventory)
# =========================
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    sku = Column(String, nullable=False, unique=True, index=True)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    category = Column(String, index=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )


# =========================
# Sale
# =========================
class Sale(Base):
    """
    One recorded sale, invoice based or direct.
    Amounts are always positive; refunds are not modelled here.
    """

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)

    customer_id = Column(
        Integer,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    product_name = Column(String)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, nullable=False, default="cash")

    sale_date = Column(  # actual sale time
        DateTime,
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    # Relationships
    customer = relationship("Customer", back_populates="sales")


# =========================
# Expense
# =========================
class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)

    description = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String, nullable=False, index=True)
    payment_method = Column(String, nullable=False, default="cash")

    expense_date = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        index=True,
    )
