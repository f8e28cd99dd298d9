"""Human-readable dumps of frames, flits and TileLink headers."""

from __future__ import annotations

from .protocol import OxPacket, TlMsgHeader

_ROW = 16


def format_ox_header(packet: OxPacket) -> str:
    """Describe the Ethernet and TLoE headers of a packet."""
    eth, tloe = packet.eth, packet.tloe
    return (
        f"Dest. MAC = {eth.dst_mac:012x}\n"
        f"Src. MAC = {eth.src_mac:012x}\n"
        f"Eth Type = {eth.eth_type:04x}\n"
        "\n<<TLoE header>>\n"
        f"vc: {tloe.vc}\n"
        f"msg_type: {int(tloe.msg_type)}\n"
        f"seq_num: {tloe.seq_num:x}\n"
        f"seq_num_ack: {tloe.seq_num_ack:x}\n"
        f"ack: {tloe.ack}\n"
        f"channel: {tloe.chan}\n"
        f"credit: {tloe.credit}\n"
        "\n"
    )


def format_flits(packet: OxPacket) -> str:
    """List the flits of a packet."""
    lines = [f"flit cnt: {len(packet.flits)}"]
    lines.extend(f"flit[{index}]: 0x{flit:x}" for index, flit in enumerate(packet.flits))
    return "\n".join(lines) + "\n\n"


def format_tl_msg_header(header: TlMsgHeader) -> str:
    """Describe a TileLink message header."""
    return (
        "<<tl_msg>>\n"
        f"chan = {header.chan} \n"
        f"opcode = {header.opcode} \n"
        f"param = {header.param} \n"
        f"size = {header.size} \n"
        f"domain = {header.domain} \n"
        f"err = {header.err} \n"
        f"source = {header.source} \n"
    )


def _printable(byte: int) -> str:
    return chr(byte) if 32 <= byte < 128 else "."


def format_payload(data: bytes) -> str:
    """Hex dump, sixteen bytes a row, followed by the printable characters."""
    rows = []
    for start in range(0, len(data), _ROW):
        row = data[start : start + _ROW]
        hex_part = "".join(
            (" " if index == 8 else "") + f" {byte:02X}" for index, byte in enumerate(row)
        )
        padding = "   " * (_ROW - len(row))
        text = "".join(_printable(byte) for byte in row)
        rows.append(f"{hex_part}{padding}\t{text}\n")
    return "".join(rows)


__all__ = ["format_flits", "format_ox_header", "format_payload", "format_tl_msg_header"]