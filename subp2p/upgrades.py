"""Upgrade that offers several inbound upgrades under one negotiation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ProtocolResponse(Generic[T]):
    """A value tagged with the index of the protocol it belongs to."""

    data: T
    index: int

    def __str__(self) -> str:
        return str(self.data)


@dataclass
class CombineUpgrades:
    """Combines several inbound upgrades into one.

    Each protocol name offered by an inner upgrade is tagged with the index of
    that upgrade, so the negotiated protocol can be routed back to it.
    """

    upgrades: list[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.upgrades = list(self.upgrades)

    def protocol_info(self) -> list[ProtocolResponse[str]]:
        """Every protocol name of every inner upgrade, with its upgrade's index."""
        return [
            ProtocolResponse(data=name, index=index)
            for index, upgrade in enumerate(self.upgrades)
            for name in upgrade.protocol_info()
        ]

    async def upgrade_inbound(
        self, reader: Any, writer: Any, info: ProtocolResponse[str]
    ) -> ProtocolResponse[Any]:
        """Run the inner upgrade selected by ``info`` and tag its result.

        The selected upgrade is consumed: a substream is negotiated only once.
        An error raised by the inner upgrade is re-raised with an ``index``
        attribute naming the protocol it came from.
        """
        if not 0 <= info.index < len(self.upgrades):
            raise IndexError(f"No upgrade at index {info.index}")
        upgrade = self.upgrades.pop(info.index)
        try:
            output = await upgrade.upgrade_inbound(reader, writer, info.data)
        except Exception as err:
            err.index = info.index  # type: ignore[attr-defined]
            raise
        return ProtocolResponse(data=output, index=info.index)