from typing import Protocol, Sequence


class LogSource(Protocol):
    """
    LogSource stands as a common protocol that every
    conversation log source must satisfy.

    Sources return every line currently available, each
    one a potential usage record. They own all I/O and
    discovery failures so the aggregation engine never
    sees them.
    """

    @property
    def name(self) -> "str": ...

    async def read_lines(self) -> "Sequence[str]": ...

    async def close(self) -> "None": ...
