# Models package
from inbound.models.session import InboundSession, SessionStatus
from inbound.models.item import InboundItem
