"""OmniXtend (TileLink over Ethernet) frame layout and codecs."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar

NUM_CONNECTION = 4
MEM_SIZE = 2 * 1024 * 1024 * 1024
RECV_BUFFER_SIZE = 2048
OX_START_ADDR = 0x0
OX_ETHERTYPE = 0xAAAA

NACK = 0
ACK = 1

ETH_HEADER_SIZE = 14
TLOE_HEADER_SIZE = 8
FLIT_SIZE = 8
MASK_SIZE = 8
MIN_FLITS = 5
MIN_FRAME_SIZE = ETH_HEADER_SIZE + TLOE_HEADER_SIZE + FLIT_SIZE + MASK_SIZE

_U64_MAX = (1 << 64) - 1
_MAC_MAX = (1 << 48) - 1
_U64 = struct.Struct(">Q")

_Layout = tuple[tuple[str, int, int], ...]


class MessageType(IntEnum):
    NORMAL = 0
    ACK_ONLY = 1
    OPEN_CONN = 2
    CLOSE_CONN = 3


class Channel(IntEnum):
    A = 1
    B = 2
    C = 3
    D = 4
    E = 5


class AOpcode(IntEnum):
    PUT_FULL_DATA = 0
    PUT_PARTIAL_DATA = 1
    GET = 4


class DOpcode(IntEnum):
    ACCESS_ACK = 0
    ACCESS_ACK_DATA = 1


class ProtocolError(ValueError):
    """Raised for frames or header fields that do not fit the wire format."""


@dataclass
class EthHeader:
    """Ethernet header; MAC addresses are held in transmission order."""

    dst_mac: int = 0
    src_mac: int = 0
    eth_type: int = OX_ETHERTYPE

    def to_bytes(self) -> bytes:
        for name, value in (("dst_mac", self.dst_mac), ("src_mac", self.src_mac)):
            if not 0 <= value <= _MAC_MAX:
                raise ProtocolError(f"{name} {value:#x} does not fit in 48 bits")
        if not 0 <= self.eth_type <= 0xFFFF:
            raise ProtocolError(f"eth_type {self.eth_type:#x} does not fit in 16 bits")
        return (
            self.dst_mac.to_bytes(6, "big")
            + self.src_mac.to_bytes(6, "big")
            + self.eth_type.to_bytes(2, "big")
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "EthHeader":
        if len(data) < ETH_HEADER_SIZE:
            raise ProtocolError(
                f"Ethernet header needs {ETH_HEADER_SIZE} bytes, got {len(data)}"
            )
        return cls(
            dst_mac=int.from_bytes(data[0:6], "big"),
            src_mac=int.from_bytes(data[6:12], "big"),
            eth_type=int.from_bytes(data[12:14], "big"),
        )

    def reply(self) -> "EthHeader":
        """Header for a frame sent back to this frame's sender."""
        return EthHeader(dst_mac=self.src_mac, src_mac=self.dst_mac, eth_type=self.eth_type)


def _pack_fields(record: Any, layout: _Layout) -> int:
    """Combine named bit fields, least significant first, into a 64-bit word."""
    value = 0
    for name, shift, width in layout:
        part = getattr(record, name)
        if not 0 <= part < (1 << width):
            raise ProtocolError(
                f"{type(record).__name__}.{name}={part} does not fit in {width} bits"
            )
        value |= int(part) << shift
    return value


def _unpack_fields(value: int, layout: _Layout) -> dict[str, int]:
    """Split a 64-bit word into named bit fields."""
    if not 0 <= value <= _U64_MAX:
        raise ProtocolError(f"{value:#x} is not a 64-bit value")
    return {
        name: (value >> shift) & ((1 << width) - 1) for name, shift, width in layout
    }


@dataclass
class TloeHeader:
    """TLoE frame header."""

    credit: int = 0
    chan: int = 0
    reserved3: int = 0
    ack: int = 0
    seq_num_ack: int = 0
    seq_num: int = 0
    reserved2: int = 0
    reserved1: int = 0
    msg_type: int = MessageType.NORMAL
    vc: int = 0

    _LAYOUT: ClassVar[_Layout] = (
        ("credit", 0, 5),
        ("chan", 5, 3),
        ("reserved3", 8, 1),
        ("ack", 9, 1),
        ("seq_num_ack", 10, 22),
        ("seq_num", 32, 22),
        ("reserved2", 54, 2),
        ("reserved1", 56, 1),
        ("msg_type", 57, 4),
        ("vc", 61, 3),
    )

    def to_int(self) -> int:
        return _pack_fields(self, self._LAYOUT)

    @classmethod
    def from_int(cls, value: int) -> "TloeHeader":
        return cls(**_unpack_fields(value, cls._LAYOUT))


@dataclass
class TlMsgHeader:
    """TileLink message header for channels A and D."""

    source: int = 0
    reserved1: int = 0
    err: int = 0
    domain: int = 0
    size: int = 0
    param: int = 0
    reserved2: int = 0
    opcode: int = 0
    chan: int = 0
    reserved3: int = 0

    _LAYOUT: ClassVar[_Layout] = (
        ("source", 0, 26),
        ("reserved1", 26, 12),
        ("err", 38, 2),
        ("domain", 40, 8),
        ("size", 48, 4),
        ("param", 52, 4),
        ("reserved2", 56, 1),
        ("opcode", 57, 3),
        ("chan", 60, 3),
        ("reserved3", 63, 1),
    )

    def to_int(self) -> int:
        return _pack_fields(self, self._LAYOUT)

    @classmethod
    def from_int(cls, value: int) -> "TlMsgHeader":
        return cls(**_unpack_fields(value, cls._LAYOUT))


@dataclass
class OxPacket:
    """A whole OmniXtend frame: headers, 64-bit flits and the message mask.

    Flits are held as the big-endian value of their eight wire bytes.
    """

    eth: EthHeader = field(default_factory=EthHeader)
    tloe: TloeHeader = field(default_factory=TloeHeader)
    tl_msg_mask: int = 0
    flits: list[int] = field(default_factory=list)

    def to_bytes(self) -> bytes:
        if not 0 <= self.tl_msg_mask <= _U64_MAX:
            raise ProtocolError(f"mask {self.tl_msg_mask:#x} is not a 64-bit value")
        body = bytearray()
        for flit in self.flits:
            if not 0 <= flit <= _U64_MAX:
                raise ProtocolError(f"flit {flit:#x} is not a 64-bit value")
            body += _U64.pack(flit)
        padding = max(0, MIN_FLITS - len(self.flits)) * FLIT_SIZE
        return (
            self.eth.to_bytes()
            + _U64.pack(self.tloe.to_int())
            + bytes(body)
            + bytes(padding)
            + _U64.pack(self.tl_msg_mask)
        )

    @classmethod
    def from_bytes(cls, data: bytes, keep_all_flits: bool = False) -> "OxPacket":
        """Decode a frame.

        Flits are kept only when the mask marks messages, unless
        ``keep_all_flits`` is set.
        """
        if len(data) < MIN_FRAME_SIZE:
            raise ProtocolError(
                f"frame needs at least {MIN_FRAME_SIZE} bytes, got {len(data)}"
            )
        eth = EthHeader.from_bytes(data)
        offset = ETH_HEADER_SIZE
        tloe = TloeHeader.from_int(_U64.unpack_from(data, offset)[0])
        offset += TLOE_HEADER_SIZE
        (mask,) = _U64.unpack_from(data, len(data) - MASK_SIZE)
        flits: list[int] = []
        if mask or keep_all_flits:
            count = (len(data) - offset - MASK_SIZE) // FLIT_SIZE
            flits = [
                flit
                for (flit,) in _U64.iter_unpack(data[offset : offset + count * FLIT_SIZE])
            ]
        return cls(eth=eth, tloe=tloe, tl_msg_mask=mask, flits=flits)

    def add_message(self, header: TlMsgHeader) -> int:
        """Append a TileLink header flit, mark it in the mask and return its index."""
        index = len(self.flits)
        if index >= 64:
            raise ProtocolError("the message mask covers at most 64 flits")
        self.flits.append(header.to_int())
        self.tl_msg_mask |= 1 << index
        return index


def is_ox_frame(frame: bytes) -> bool:
    """Tell whether an Ethernet frame carries the OmniXtend ethertype."""
    if len(frame) < ETH_HEADER_SIZE:
        return False
    return int.from_bytes(frame[12:14], "big") == OX_ETHERTYPE


__all__ = [
    "ACK",
    "AOpcode",
    "Channel",
    "DOpcode",
    "EthHeader",
    "MEM_SIZE",
    "MIN_FRAME_SIZE",
    "MessageType",
    "NACK",
    "NUM_CONNECTION",
    "OX_ETHERTYPE",
    "OX_START_ADDR",
    "OxPacket",
    "ProtocolError",
    "RECV_BUFFER_SIZE",
    "TloeHeader",
    "TlMsgHeader",
    "is_ox_frame",
]