from .mock_emulator import MockDeviceEmulator
from .records import (
    FIRMWARE_VERSION,
    NUM_TRANSDUCERS,
    RX_RECORD_SIZE,
    TAG_CLEAR,
    TAG_DRIVES,
    TAG_FIRM_INFO,
    TAG_NOP,
    TX_RECORD_SIZE,
    RxStatus,
    TxCommand,
)

__all__ = [
    "MockDeviceEmulator",
    "FIRMWARE_VERSION",
    "NUM_TRANSDUCERS",
    "RX_RECORD_SIZE",
    "TAG_CLEAR",
    "TAG_DRIVES",
    "TAG_FIRM_INFO",
    "TAG_NOP",
    "TX_RECORD_SIZE",
    "RxStatus",
    "TxCommand",
]
