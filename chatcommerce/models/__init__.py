from chatcommerce.models.conversation_session import ConversationSessionRecord
from chatcommerce.models.processed_message import ProcessedMessage
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
