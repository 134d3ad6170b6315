from .inventory import *  # noqa
from .product import *  # noqa
from .manufacturing import *  # noqa
from .audit import *  # noqa

# Platform event-bus table (transactional outbox)
from app.events.outbox import *  # noqa
