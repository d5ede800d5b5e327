from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON
from app.db.session import Base

class ProcessedWebhook(Base):
    """One row per webhook delivery already applied; guards against redelivery."""
    __tablename__ = "processed_webhooks"

    id = Column(Integer, primary_key=True, index=True)
    webhook_id = Column(String, unique=True, index=True, nullable=False)
    topic = Column(String, nullable=False)
    shop_domain = Column(String, nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow)

class GdprRequest(Base):
    __tablename__ = "gdpr_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_type = Column(String, nullable=False)
    shop_domain = Column(String, index=True)
    shop_id = Column(String)
    customer_id = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    request_payload = Column(JSON)
    status = Column(String, default="processing", nullable=False)
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

class AppEvent(Base):
    __tablename__ = "app_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String, nullable=False)
    shop_domain = Column(String, index=True)
    shop_id = Column(String)
    event_data = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
