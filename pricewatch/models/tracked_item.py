"""
Tracked item models for database storage
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pricewatch.core.database import Base

class TrackedItemModel(Base):
    """One user's watch on one product"""
    __tablename__ = "tracked_items"
    
    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    
    # Product descriptor (display only)
    product_name = Column(String(200), nullable=False)
    product_brand = Column(String(100), nullable=True)
    product_category = Column(String(50), nullable=True)
    product_image = Column(String(500), nullable=True)
    
    # Tracking state
    original_price = Column(Float, nullable=False)
    current_price = Column(Float, nullable=False)
    lowest_price = Column(Float, nullable=True)
    highest_price = Column(Float, nullable=True)
    currency = Column(String(3), default="USD")
    is_tracking = Column(Boolean, default=True)
    check_frequency = Column(String(10), default="daily", index=True)  # hourly, daily, weekly
    last_checked = Column(DateTime, nullable=True, index=True)
    status = Column(String(20), default="active", index=True)  # active, purchased, removed, out_of_stock
    purchased_at = Column(DateTime, nullable=True)
    purchase_price = Column(Float, nullable=True)
    
    # Alert configuration
    alerts_enabled = Column(Boolean, default=True)
    price_drop_threshold = Column(Float, nullable=True)  # percent, NULL falls back to DEFAULT_PRICE_DROP_THRESHOLD
    target_price = Column(Float, nullable=True)
    email_alerts = Column(Boolean, default=True)
    push_alerts = Column(Boolean, default=True)
    last_alert_sent = Column(DateTime, nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    # Relationships
    sources = relationship(
        "ItemSourceModel",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemSourceModel.id",
    )
    history = relationship(
        "PriceHistoryModel",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="PriceHistoryModel.id",
    )

class ItemSourceModel(Base):
    """Retailer polled for a tracked item"""
    __tablename__ = "item_sources"
    
    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(String(36), ForeignKey("tracked_items.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    domain = Column(String(200), nullable=False)
    url = Column(String(1000), nullable=False)
    last_observed_price = Column(Float, nullable=True)
    availability = Column(String(20), default="unknown")
    last_checked_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    
    item = relationship("TrackedItemModel", back_populates="sources")

class PriceHistoryModel(Base):
    """Single observed price for a tracked item"""
    __tablename__ = "price_history"
    
    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(String(36), ForeignKey("tracked_items.id"), nullable=False, index=True)
    price = Column(Float, nullable=False)
    currency = Column(String(3), default="USD")
    source = Column(String(100), nullable=False)
    url = Column(String(1000), nullable=True)
    availability = Column(String(20), default="unknown")
    recorded_at = Column(DateTime, nullable=False, index=True)
    
    item = relationship("TrackedItemModel", back_populates="history")
