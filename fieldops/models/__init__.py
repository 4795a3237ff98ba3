from fieldops.models.ticket import Ticket
from fieldops.models.ticket_note import TicketNote

__all__ = [
    "Ticket",
    "TicketNote",
]
