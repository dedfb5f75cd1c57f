"""Error taxonomy for the SoMi practice engine."""


class SomiError(Exception):
    """Base class for every recoverable engine error."""


class NoContentAvailable(SomiError):
    """Selection found nothing playable; the caller supplies a fallback asset."""


class BackingStoreUnavailable(SomiError):
    """A Supabase read or write failed (network, auth, or API error)."""


class ConfigurationMissing(SomiError):
    """A routine type / block count combination has no configured sequence."""

    def __init__(self, routine_type: str, block_count: int):
        self.routine_type = routine_type
        self.block_count = block_count
        super().__init__(f"No {routine_type!r} routine is configured for {block_count} blocks")
