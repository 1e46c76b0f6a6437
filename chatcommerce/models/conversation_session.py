from sqlalchemy import Column, DateTime, Integer, String, Text, func

from chatcommerce.core.database import Base


class ConversationSessionRecord(Base):
    __tablename__ = "conversation_sessions"

    customer_id = Column(String, primary_key=True)
    vendor_id = Column(String, nullable=True)
    step = Column(String, nullable=False, default="greeting")

    # JSON serializado
    cart_json = Column(Text, nullable=False, default="[]")
    preferences_json = Column(Text, nullable=False, default="{}")
    order_history_json = Column(Text, nullable=False, default="[]")
    browse_filter_json = Column(Text, nullable=True)

    last_activity_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # controle de concorrência otimista
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
