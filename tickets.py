import logging
import random

from database import find_document

logger = logging.getLogger(__name__)

TICKET_MIN = 100000
TICKET_MAX = 999999
MAX_ATTEMPTS = 20


class TicketNumberExhausted(RuntimeError):
    pass


def generate_ticket_number() -> int:
    """Return a pseudo-random 6-digit ticket number."""
    return random.randint(TICKET_MIN, TICKET_MAX)


def issue_ticket_number(db) -> int:
    """Draw ticket numbers until one is not held by an existing booking."""
    for _ in range(MAX_ATTEMPTS):
        number = generate_ticket_number()
        if find_document(db, "booking", {"ticketNumber": number}) is None:
            return number
        logger.info("Ticket number collision on %s, drawing again", number)
    raise TicketNumberExhausted(f"No free ticket number after {MAX_ATTEMPTS} attempts")
