from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.db.session import Base

class ShopSession(Base):
    __tablename__ = "shopify_sessions"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, unique=True, index=True, nullable=False)
    access_token = Column(String, nullable=False)
    scopes = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
    installed_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    uninstalled_at = Column(DateTime, nullable=True)
