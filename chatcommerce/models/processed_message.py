from sqlalchemy import Column, DateTime, String

from chatcommerce.core.database import Base


class ProcessedMessage(Base):
    __tablename__ = "processed_messages"
    message_id = Column(String, primary_key=True)
    customer_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
