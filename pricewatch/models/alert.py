"""
Price alert model for notifications and alerts
"""
from sqlalchemy import Column, String, Float, DateTime, Boolean, Integer
from pricewatch.core.database import Base

class PriceAlertModel(Base):
    """Price alert with per-channel delivery bookkeeping"""
    __tablename__ = "price_alerts"
    
    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    item_id = Column(String(36), nullable=False, index=True)
    alert_type = Column(String(20), nullable=False, index=True)  # price_drop, target_price, back_in_stock, price_increase
    status = Column(String(20), default="pending", index=True)  # pending, sent, failed, dismissed
    priority = Column(String(10), default="medium")  # low, medium, high, urgent
    
    # Trigger snapshot
    previous_price = Column(Float, nullable=True)
    current_price = Column(Float, nullable=False)
    target_price = Column(Float, nullable=True)
    drop_amount = Column(Float, nullable=True)
    drop_percentage = Column(Float, nullable=True)
    
    # Product and source snapshot
    product_name = Column(String(200), nullable=False)
    product_brand = Column(String(100), nullable=True)
    product_image = Column(String(500), nullable=True)
    product_category = Column(String(50), nullable=True)
    source_name = Column(String(100), nullable=True)
    source_domain = Column(String(200), nullable=True)
    source_url = Column(String(1000), nullable=True)
    
    # Channel bookkeeping
    email_requested = Column(Boolean, default=True)
    email_sent = Column(Boolean, default=False)
    email_sent_at = Column(DateTime, nullable=True)
    email_attempts = Column(Integer, default=0)
    push_requested = Column(Boolean, default=True)
    push_sent = Column(Boolean, default=False)
    push_sent_at = Column(DateTime, nullable=True)
    push_attempts = Column(Integer, default=0)
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    
    created_at = Column(DateTime, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
