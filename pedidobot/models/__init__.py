from pedidobot.models.user import User
from pedidobot.models.chat_turn import ChatTurn
from pedidobot.models.product import Flavor, Product, ProductFlavor
from pedidobot.models.sale import Sale, SaleItem
from pedidobot.models.processed_message import ProcessedMessage
from pedidobot.models.ai_message_log import AIMessageLog
