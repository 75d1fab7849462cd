from sqlalchemy import JSON, Column, Index, Numeric, String, TIMESTAMP, CheckConstraint

from .database import Base


class OrderRow(Base):
    __tablename__ = "checkout_orders"

    # The primary key is the idempotency key: the unique constraint makes INSERT a create-if-absent
    cart_id = Column(String(255), primary_key=True)
    order_id = Column(String(64), nullable=False, unique=True)
    status = Column(String(32), nullable=False)
    items = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    payment_token = Column(String(255), nullable=False)
    transaction_id = Column(String(64), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('CREATED', 'PAYMENT_CAPTURED', 'PAYMENT_FAILED')",
            name="checkout_orders_status_valid",
        ),
        Index("ix_checkout_orders_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<OrderRow(cart_id='{self.cart_id}', order_id='{self.order_id}', status={self.status})>"
