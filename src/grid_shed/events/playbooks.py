from grid_shed.events.models import Playbook
from grid_shed.store import InMemoryStore


class PlaybookStore(InMemoryStore[Playbook]):
    """Named shed/nudge sequences, replaced wholesale per field on upsert."""

    model = Playbook
