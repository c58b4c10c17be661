class MalformedDateKey(ValueError):
    """A date string that is not a real calendar day in ``YYYY-MM-DD`` form."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Malformed date key {value!r}; expected YYYY-MM-DD")


class StaleSnapshot(Exception):
    """A snapshot finished after a newer one was requested for the same key."""

    def __init__(self, key, seq: int, latest: int):
        self.key = key
        self.seq = seq
        self.latest = latest
        super().__init__(f"Snapshot {seq} for {key!r} superseded by {latest}")
