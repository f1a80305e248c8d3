# -*- coding: utf-8 -*-
"""
Payment Error Log Model

Provider failures recorded for monitoring: missing configuration,
gateway rejections, network errors and dependent-effect failures.
"""
from sqlalchemy import Column, Integer, String, TIMESTAMP, Index
from sqlalchemy.sql import func
from storefront.database import Base


class PaymentErrorLog(Base):
    """
    Payment error logging model for tracking and monitoring.

    Tracks:
    - Individual payment errors per provider
    - Error types (config, timeout, gateway error, network error, ...)
    - The payable and operation that failed
    """
    __tablename__ = "payment_error_logs"
    __table_args__ = (
        Index('ix_payment_error_logs_user_created', 'user_id', 'created_at'),
        Index('ix_payment_error_logs_error_type', 'error_type'),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # nullable for system errors (stream, maintenance)
    user_id = Column(Integer, nullable=True, index=True)

    # alipay, paypal, nets
    provider = Column(String(20), nullable=True)

    # config, timeout, gateway_error, network_error, dependent_effect
    error_type = Column(String(50), nullable=False)

    # sanitized, no credentials
    error_message = Column(String(500), nullable=True)

    # create_payment, query_payment_status, nets_qr_request, after_paid
    operation = Column(String(100), nullable=True)

    payable_type = Column(String(20), nullable=True)
    payable_id = Column(Integer, nullable=True)
    out_trade_no = Column(String(64), nullable=True, index=True)

    # JSON string, sanitized
    context = Column(String(1000), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.current_timestamp(), index=True)
