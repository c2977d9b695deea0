from dataclasses import dataclass


@dataclass(frozen=True)
class PeerEndpoint:
    """Where a paired receiver listens for audio datagrams."""

    address: str
    port: int

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Port out of range: {self.port}")

    def describe(self) -> str:
        """Return ``address:port``."""
        return f"{self.address}:{self.port}"

    def as_tuple(self) -> tuple[str, int]:
        """Socket address tuple for ``sendto``."""
        return (self.address, self.port)
