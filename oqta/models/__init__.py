from oqta.models.admin_user import AdminUser
from oqta.models.chat_session import ChatSession
from oqta.models.chat_history import ChatHistory
from oqta.models.conversation_summary import ConversationSummary
from oqta.models.setting import Setting
from oqta.models.customer import Customer
from oqta.models.customer_session import CustomerSession
from oqta.models.invoice import Invoice
from oqta.models.free_zone import FreeZoneIntegration
