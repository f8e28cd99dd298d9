"""Connection bookkeeping for peers talking to the memory node."""

from __future__ import annotations

from dataclasses import dataclass, field

from .protocol import (
    ACK,
    NUM_CONNECTION,
    Channel,
    MessageType,
    OxPacket,
    TloeHeader,
)

SEQ_NUM_BITS = 22
_SEQ_MASK = (1 << SEQ_NUM_BITS) - 1
INITIAL_CREDIT = 10


class OxConnectionError(LookupError):
    """Raised when a connection cannot be found, opened or addressed."""


@dataclass
class Connection:
    """State kept for one peer; ``src_mac`` is None while the slot is free."""

    src_mac: int | None = None
    seq_num: int = 0
    seq_num_expected: int = 0
    credit: int = 0

    @property
    def in_use(self) -> bool:
        return self.src_mac is not None


@dataclass
class ConnectionTable:
    """A fixed number of connection slots, addressed by index."""

    size: int = NUM_CONNECTION
    connections: list[Connection] = field(init=False)

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("a connection table needs at least one slot")
        self.connections = [Connection() for _ in range(self.size)]

    def __len__(self) -> int:
        return len(self.connections)

    def __getitem__(self, connection_id: int) -> Connection:
        return self._slot(connection_id)

    def _slot(self, connection_id: int) -> Connection:
        if not 0 <= connection_id < len(self.connections):
            raise OxConnectionError(f"connection id {connection_id} is out of range")
        return self.connections[connection_id]

    def _find(self, mac: int) -> int | None:
        return next(
            (index for index, conn in enumerate(self.connections) if conn.src_mac == mac),
            None,
        )

    def lookup(self, packet: OxPacket) -> int:
        """Return the id of the sender's connection and note its sequence number."""
        mac = packet.eth.src_mac
        index = self._find(mac)
        if index is None:
            raise OxConnectionError(f"MAC {mac:012x} is not found in list")
        conn = self.connections[index]
        seq = packet.tloe.seq_num
        if conn.seq_num_expected <= seq:
            conn.seq_num_expected = (seq + 1) & _SEQ_MASK
        return index

    def open(self, packet: OxPacket) -> int:
        """Open (or reopen) a connection for the sender and return its id."""
        seq = packet.tloe.seq_num
        if seq != 0:
            raise OxConnectionError(
                f"seq_num={seq} must be 0 for Open Connection packet"
            )
        mac = packet.eth.src_mac
        index = self._find(mac)
        if index is None:
            index = next(
                (i for i, conn in enumerate(self.connections) if not conn.in_use),
                None,
            )
            if index is None:
                raise OxConnectionError("no empty connection slot")
        self.connections[index] = Connection(
            src_mac=mac,
            seq_num=0,
            seq_num_expected=(seq + 1) & _SEQ_MASK,
            credit=INITIAL_CREDIT,
        )
        return index

    def close(self, connection_id: int) -> None:
        """Free a connection slot."""
        self._slot(connection_id).src_mac = None

    def frame_header(self, connection_id: int, received: OxPacket) -> TloeHeader:
        """Build a TLoE header answering ``received``, using the next sequence number."""
        conn = self._slot(connection_id)
        header = TloeHeader(
            credit=conn.credit,
            chan=received.tloe.chan,
            ack=ACK,
            seq_num_ack=received.tloe.seq_num,
            seq_num=conn.seq_num,
            msg_type=MessageType.NORMAL,
            vc=received.tloe.vc,
        )
        conn.seq_num = (conn.seq_num + 1) & _SEQ_MASK
        return header

    def response_template(self, connection_id: int, received: OxPacket) -> OxPacket:
        """An empty packet addressed back to the sender of ``received``."""
        return OxPacket(
            eth=received.eth.reply(),
            tloe=self.frame_header(connection_id, received),
        )

    def ack_packet(self, connection_id: int, received: OxPacket) -> OxPacket:
        """A packet acknowledging ``received`` on channel A."""
        packet = self.response_template(connection_id, received)
        packet.tloe.chan = Channel.A
        return packet

    def close_packet(self, connection_id: int, received: OxPacket) -> OxPacket:
        """A packet answering a close request."""
        packet = self.response_template(connection_id, received)
        packet.tloe.msg_type = MessageType.CLOSE_CONN
        return packet


__all__ = ["Connection", "ConnectionTable", "OxConnectionError"]