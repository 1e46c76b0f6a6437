from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func

from chatcommerce.core.database import Base


class WhatsAppMessageLog(Base):
    __tablename__ = "whatsapp_message_log"

    id = Column(Integer, primary_key=True)
    customer_id = Column(String, nullable=False)
    vendor_id = Column(String, nullable=True)
    direction = Column(String, nullable=False)
    message_type = Column(String, nullable=False)
    body = Column(Text, nullable=True)
    payload_json = Column(Text, nullable=True)
    status = Column(String, nullable=False)
    error = Column(Text, nullable=True)
    provider_message_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("ix_whatsapp_message_log_customer_created", WhatsAppMessageLog.customer_id, WhatsAppMessageLog.created_at)
