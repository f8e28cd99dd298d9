import pytest

from oxmem.connections import Connection, ConnectionTable, OxConnectionError
from oxmem.protocol import (
    NUM_CONNECTION,
    Channel,
    EthHeader,
    MessageType,
    OxPacket,
    TloeHeader,
)

NODE_MAC = 0x020000000000
PEER_MACS = [0x020000000001 + i for i in range(NUM_CONNECTION + 1)]


def make_packet(src_mac, seq_num=0, msg_type=MessageType.NORMAL, chan=0, vc=0):
    return OxPacket(
        eth=EthHeader(dst_mac=NODE_MAC, src_mac=src_mac),
        tloe=TloeHeader(seq_num=seq_num, msg_type=msg_type, chan=chan, vc=vc),
    )


def test_new_table_has_free_slots():
    table = ConnectionTable()
    assert len(table) == NUM_CONNECTION
    assert all(not conn.in_use for conn in table.connections)


def test_open_assigns_slots_in_order():
    table = ConnectionTable()
    ids = [table.open(make_packet(mac, msg_type=MessageType.OPEN_CONN)) for mac in PEER_MACS[:NUM_CONNECTION]]
    assert ids == list(range(NUM_CONNECTION))


def test_open_initialises_connection_state():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    conn = table[cid]
    assert conn.src_mac == PEER_MACS[0]
    assert conn.seq_num == 0
    assert conn.seq_num_expected == 1
    assert conn.credit == 10


def test_reopen_same_mac_reuses_slot_and_resets():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    table.frame_header(cid, make_packet(PEER_MACS[0]))
    again = table.open(make_packet(PEER_MACS[0]))
    assert again == cid
    assert table[cid].seq_num == 0
    assert sum(conn.in_use for conn in table.connections) == 1


def test_open_with_nonzero_seq_raises():
    table = ConnectionTable()
    with pytest.raises(OxConnectionError):
        table.open(make_packet(PEER_MACS[0], seq_num=3))
    assert not table[0].in_use


def test_open_when_full_raises():
    table = ConnectionTable()
    for mac in PEER_MACS[:NUM_CONNECTION]:
        table.open(make_packet(mac))
    with pytest.raises(OxConnectionError):
        table.open(make_packet(PEER_MACS[NUM_CONNECTION]))


def test_lookup_finds_connection_and_advances_expected():
    table = ConnectionTable()
    table.open(make_packet(PEER_MACS[0]))
    cid = table.open(make_packet(PEER_MACS[1]))
    assert table.lookup(make_packet(PEER_MACS[1], seq_num=5)) == cid
    assert table[cid].seq_num_expected == 6


def test_lookup_older_seq_keeps_expected():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    table.lookup(make_packet(PEER_MACS[0], seq_num=7))
    table.lookup(make_packet(PEER_MACS[0], seq_num=2))
    assert table[cid].seq_num_expected == 8


def test_lookup_unknown_mac_raises():
    table = ConnectionTable()
    with pytest.raises(OxConnectionError):
        table.lookup(make_packet(PEER_MACS[0]))


def test_close_frees_slot():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    table.close(cid)
    assert not table[cid].in_use
    with pytest.raises(OxConnectionError):
        table.lookup(make_packet(PEER_MACS[0]))
    assert table.open(make_packet(PEER_MACS[1])) == cid


def test_close_out_of_range_raises():
    table = ConnectionTable()
    with pytest.raises(OxConnectionError):
        table.close(NUM_CONNECTION)


def test_frame_header_fields_and_sequence():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    received = make_packet(PEER_MACS[0], seq_num=9, chan=Channel.A, vc=2)
    first = table.frame_header(cid, received)
    second = table.frame_header(cid, received)
    assert first.seq_num == 0
    assert second.seq_num == 1
    assert first.seq_num_ack == 9
    assert first.ack == 1
    assert first.credit == table[cid].credit
    assert first.chan == Channel.A
    assert first.vc == 2
    assert first.msg_type == MessageType.NORMAL


def test_frame_header_sequence_wraps_at_22_bits():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    table.connections[cid] = Connection(
        src_mac=PEER_MACS[0], seq_num=(1 << 22) - 1, seq_num_expected=1, credit=10
    )
    received = make_packet(PEER_MACS[0])
    assert table.frame_header(cid, received).seq_num == (1 << 22) - 1
    assert table.frame_header(cid, received).seq_num == 0


def test_response_template_swaps_addresses():
    table = ConnectionTable()
    received = make_packet(PEER_MACS[0])
    cid = table.open(received)
    packet = table.response_template(cid, received)
    assert packet.eth.dst_mac == PEER_MACS[0]
    assert packet.eth.src_mac == NODE_MAC
    assert packet.eth.eth_type == received.eth.eth_type
    assert packet.flits == []
    assert packet.tl_msg_mask == 0


def test_ack_packet_round_trips_on_wire():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    received = make_packet(PEER_MACS[0], seq_num=4, chan=Channel.C)
    wire = table.ack_packet(cid, received).to_bytes()
    assert len(wire) == 70
    decoded = OxPacket.from_bytes(wire)
    assert decoded.tloe.chan == Channel.A
    assert decoded.tloe.ack == 1
    assert decoded.tloe.seq_num_ack == 4
    assert decoded.tloe.msg_type == MessageType.NORMAL
    assert decoded.eth.dst_mac == PEER_MACS[0]


def test_close_packet_marks_close_connection():
    table = ConnectionTable()
    cid = table.open(make_packet(PEER_MACS[0]))
    received = make_packet(PEER_MACS[0], seq_num=2, msg_type=MessageType.CLOSE_CONN, chan=Channel.B)
    packet = table.close_packet(cid, received)
    assert packet.tloe.msg_type == MessageType.CLOSE_CONN
    assert packet.tloe.chan == Channel.B
    decoded = OxPacket.from_bytes(packet.to_bytes())
    assert decoded.tloe == packet.tloe


def test_frame_header_unknown_id_raises():
    table = ConnectionTable()
    with pytest.raises(OxConnectionError):
        table.frame_header(-1, make_packet(PEER_MACS[0]))