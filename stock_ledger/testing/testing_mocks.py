from unittest.mock import AsyncMock, MagicMock


# Mocked Tortoise transaction manager
class in_transaction:
    """Stand-in for tortoise.transactions.in_transaction; yields a dummy connection."""
    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return object()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def processed_event_filter(already_processed: bool):
    """Replacement for ProcessedEvent.filter: `.exists()` resolves to the given flag."""
    qs = MagicMock()
    qs.exists = AsyncMock(return_value=already_processed)
    return MagicMock(return_value=qs)
