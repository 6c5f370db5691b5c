"""Objects shared between the network side and the simulation owner."""

from __future__ import annotations

from dataclasses import dataclass, field

from arraysim.util import (
    DEFAULT_ACK_TIMEOUT,
    DEFAULT_MAX_DEVICES,
    DEFAULT_MAX_HANDSHAKE_ATTEMPTS,
)

from .ack_store import AckStore
from .relay import OutboundRelay
from .signal_channel import SignalChannel


@dataclass
class LinkContext:
    """Constructed once at startup and handed to both sides.

    The signal channel is written by sessions and read by the owner; the ack
    store and relay are written by the owner and read by sessions or drivers.
    """

    tx_record_size: int
    rx_record_size: int
    max_devices: int = DEFAULT_MAX_DEVICES
    ack_timeout: float = DEFAULT_ACK_TIMEOUT
    max_handshake_attempts: int = DEFAULT_MAX_HANDSHAKE_ATTEMPTS
    channel: SignalChannel = field(default_factory=SignalChannel)
    ack_store: AckStore = field(init=False)
    relay: OutboundRelay = field(init=False)

    def __post_init__(self):
        self.ack_store = AckStore(self.rx_record_size)
        self.relay = OutboundRelay(self.tx_record_size)

    @classmethod
    def for_emulator(cls, emulator, **kwargs) -> LinkContext:
        return cls(
            tx_record_size=emulator.tx_record_size,
            rx_record_size=emulator.rx_record_size,
            **kwargs,
        )
