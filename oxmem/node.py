"""The memory node: answers TileLink reads and writes sent over Ethernet."""

from __future__ import annotations

import getopt
import logging
import re
import socket
import sys
from dataclasses import dataclass, field, replace

from .connections import ConnectionTable, OxConnectionError
from .memory import Memory
from .protocol import (
    ETH_HEADER_SIZE,
    FLIT_SIZE,
    MASK_SIZE,
    MEM_SIZE,
    OX_START_ADDR,
    RECV_BUFFER_SIZE,
    TLOE_HEADER_SIZE,
    AOpcode,
    Channel,
    DOpcode,
    MessageType,
    OxPacket,
    ProtocolError,
    TlMsgHeader,
    is_ox_frame,
)

log = logging.getLogger(__name__)

ETH_P_ALL = 0x0003
_U64_MASK = (1 << 64) - 1
_CREDIT_MASK = 0x1F
_MAX_FLITS = (RECV_BUFFER_SIZE - ETH_HEADER_SIZE - TLOE_HEADER_SIZE - MASK_SIZE) // FLIT_SIZE

_SIZE_UNITS = {"g": 1024 * 1024 * 1024, "m": 1024 * 1024, "k": 1024}
_SIZE_RE = re.compile(r"\s*\+?(\d+)(.)", re.DOTALL)
_INT_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


def parse_size(text: str) -> int:
    """Turn a size such as ``4G``, ``512M`` or ``64k`` into bytes."""
    match = _SIZE_RE.match(text)
    if match is None:
        raise ValueError(f"invalid size {text!r}")
    number, unit = match.groups()
    multiplier = _SIZE_UNITS.get(unit.lower())
    if multiplier is None:
        raise ValueError(f"invalid size unit {unit!r} in {text!r}")
    size = (int(number) * multiplier) & _U64_MASK
    if size == 0:
        raise ValueError(f"size {text!r} is zero")
    return size


def _parse_offset(text: str) -> int:
    """Read an integer with a C-style base prefix; garbage reads as zero."""
    match = _INT_RE.match(text)
    if match is None:
        return 0
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)
    return (-value if sign == "-" else value) & _U64_MASK


def _set_bits(mask: int):
    return (index for index in range(64) if (mask >> index) & 1)


def _flit(packet: OxPacket, index: int) -> int:
    try:
        return packet.flits[index]
    except IndexError:
        raise ProtocolError(f"message refers to missing flit {index}") from None


def _payload(packet: OxPacket, start: int, size: int) -> bytes:
    count = -(-size // FLIT_SIZE)
    flits = packet.flits[start : start + count]
    if len(flits) < count:
        raise ProtocolError(f"message needs {size} data bytes, frame is too short")
    return b"".join(flit.to_bytes(FLIT_SIZE, "big") for flit in flits)[:size]


@dataclass
class MemoryNode:
    """Memory plus the connection state of the peers using it."""

    memory: Memory = field(default_factory=Memory)
    connections: ConnectionTable = field(default_factory=ConnectionTable)

    def _reply(self, connection_id: int, packet: OxPacket) -> OxPacket:
        reply = OxPacket(
            eth=packet.eth.reply(),
            tloe=self.connections.frame_header(connection_id, packet),
        )
        reply.tloe.chan = Channel.A
        return reply

    def _put_full_data(
        self, connection_id: int, packet: OxPacket, index: int, header: TlMsgHeader
    ) -> OxPacket:
        address = _flit(packet, index + 1)
        data = _payload(packet, index + 2, 1 << header.size)
        reply = self._reply(connection_id, packet)
        reply.tloe.credit = (header.size - 3) & _CREDIT_MASK
        self.memory.write(address, data)
        reply.add_message(replace(header, err=0, opcode=DOpcode.ACCESS_ACK, chan=Channel.D))
        return reply

    def _get(
        self, connection_id: int, packet: OxPacket, index: int, header: TlMsgHeader
    ) -> OxPacket:
        address = _flit(packet, index + 1)
        size = 1 << header.size
        data_flits = -(-size // FLIT_SIZE)
        if 1 + data_flits > _MAX_FLITS:
            raise ProtocolError(f"read of {size} bytes does not fit in one frame")
        data = self.memory.read(address, size)
        reply = self._reply(connection_id, packet)
        reply.add_message(
            replace(header, err=0, opcode=DOpcode.ACCESS_ACK_DATA, chan=Channel.D)
        )
        reply.tloe.credit = 0
        padded = data + bytes(data_flits * FLIT_SIZE - len(data))
        reply.flits.extend(
            int.from_bytes(padded[start : start + FLIT_SIZE], "big")
            for start in range(0, len(padded), FLIT_SIZE)
        )
        return reply

    def handle_normal_packet(self, packet: OxPacket) -> list[OxPacket]:
        """Serve the TileLink messages of a normal packet and return the replies."""
        connection_id = self.connections.lookup(packet)
        if not packet.tl_msg_mask:
            return [self.connections.ack_packet(connection_id, packet)]
        replies = []
        for index in _set_bits(packet.tl_msg_mask):
            header = TlMsgHeader.from_int(_flit(packet, index))
            if header.chan != Channel.A:
                log.debug("TL channel %d is not supported", header.chan)
                continue
            if header.opcode == AOpcode.PUT_FULL_DATA:
                replies.append(self._put_full_data(connection_id, packet, index, header))
            elif header.opcode == AOpcode.GET:
                replies.append(self._get(connection_id, packet, index, header))
            else:
                log.debug("OP_CODE=%d is not supported", header.opcode)
                break
        return replies

    def handle_frame(self, frame: bytes) -> list[bytes]:
        """Process one received Ethernet frame and return the frames to send back."""
        if not is_ox_frame(frame):
            return []
        packet = OxPacket.from_bytes(frame)
        msg_type = packet.tloe.msg_type
        if msg_type == MessageType.NORMAL:
            try:
                replies = self.handle_normal_packet(packet)
            except OxConnectionError as exc:
                log.warning("Connection Error! - %s", exc)
                return []
        elif msg_type == MessageType.OPEN_CONN:
            connection_id = self.connections.open(packet)
            replies = [self.connections.ack_packet(connection_id, packet)]
        elif msg_type == MessageType.CLOSE_CONN:
            try:
                connection_id = self.connections.lookup(packet)
            except OxConnectionError:
                log.warning("Connection Error! - This connection is not found in list.")
                return []
            replies = [self.connections.close_packet(connection_id, packet)]
            self.connections.close(connection_id)
        else:
            return []
        return [reply.to_bytes() for reply in replies]


def serve(sock, node: MemoryNode) -> None:
    """Answer frames from ``sock`` until it yields no more data.

    Malformed frames are dropped; a connection that cannot be opened ends
    the loop with :class:`OxConnectionError`.
    """
    while True:
        frame = sock.recv(RECV_BUFFER_SIZE)
        if not frame:
            return
        try:
            replies = node.handle_frame(frame)
        except ValueError as exc:
            log.warning("dropping frame: %s", exc)
            continue
        for reply in replies:
            sock.send(reply)


def _print_usage() -> None:
    print("Usage: memorynode -i <interface> -s <size>")
    print("Options:")
    print("  -i <interface>    Network interface to use (e.g., eth0)")
    print("  -s <size>         Memory size (e.g., 4G)")
    print("  -o <offset>       Offset of start address  (e.g., 0x200000000, default=0x0)")
    print("  --help            Display this help message")


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    interface = None
    mem_size = MEM_SIZE
    start_offset = OX_START_ADDR

    try:
        options, _ = getopt.getopt(args, "i:s:o:h")
    except getopt.GetoptError:
        _print_usage()
        return 1

    for option, value in options:
        if option == "-i":
            interface = value
        elif option == "-s":
            try:
                mem_size = parse_size(value)
            except ValueError:
                print("Error: Invalid size format. Use format like '4G', '512M', etc.")
                return 1
        elif option == "-o":
            start_offset = _parse_offset(value)
        elif option == "-h":
            _print_usage()
            return 0

    if not interface:
        print("Error: Interface (-i) is required")
        _print_usage()
        return 1

    family = getattr(socket, "AF_PACKET", None)
    if family is None:
        print("Socket creation error: raw packet sockets are not available", file=sys.stderr)
        return -1
    try:
        sock = socket.socket(family, socket.SOCK_RAW, socket.htons(ETH_P_ALL))
    except OSError as exc:
        print(f"Socket creation error: {exc}", file=sys.stderr)
        return -1

    with sock:
        try:
            sock.bind((interface, ETH_P_ALL))
        except OSError as exc:
            print(f"Socket bind error: {exc}", file=sys.stderr)
            return 0

        print(f"mem_size = {mem_size} ")
        node = MemoryNode(memory=Memory(mem_size, start_offset))
        try:
            serve(sock, node)
        except OxConnectionError as exc:
            print(f"Connection Error! - {exc}")
        except KeyboardInterrupt:
            pass
    return 0


__all__ = ["MemoryNode", "main", "parse_size", "serve"]