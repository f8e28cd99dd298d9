# oxmem

`oxmem` is a memory node for OmniXtend: it speaks TileLink over Ethernet
(TLoE) on a raw Linux network interface and serves reads and writes from a
block of memory it holds itself.

It answers:

- **Open Connection** frames by recording the peer (up to four at a time) and
  sending an acknowledgement. The frame's sequence number must be 0.
- **Normal** frames from a known peer carrying Channel A `PutFullData`
  (replied to with `AccessAck`) and `Get` (replied to with `AccessAckData`
  and the data read). A Normal frame with no TileLink messages gets a plain
  acknowledgement. Normal frames from unknown peers are dropped.
- **Close Connection** frames by acknowledging and forgetting the peer.

Only frames with the OmniXtend EtherType `0xAAAA` are looked at; all others
are ignored, as are Ack Only frames.

## Installing

```
pip install .
```

## Running

Raw sockets need Linux and the `CAP_NET_RAW` capability (or root):

```
oxmem -i eth0 -s 512M
oxmem -i eth0 -s 4G -o 0x200000000
```

Options:

- `-i <interface>`: network interface to listen on (required)
- `-s <size>`: memory size with a unit of `K`, `M` or `G`, e.g. `512M`
  (default 2G)
- `-o <offset>`: TileLink address where the memory starts (default `0x0`);
  accepts decimal, `0x` hex or leading-zero octal
- `-h`: show usage

Addresses are taken relative to the offset and wrap around the memory size.
Memory starts out zeroed and is allocated page by page as it is written, so
a large `-s` costs nothing up front.

The node runs until interrupted. Malformed frames are dropped; if an Open
Connection arrives when all four slots are taken, the node stops.

## Using it as a library

The pieces can be used on their own, for example to build or inspect frames
in tests of other OmniXtend software:

```python
from oxmem.dump import format_ox_header, format_payload
from oxmem.memory import Memory
from oxmem.node import MemoryNode, parse_size
from oxmem.protocol import EthHeader, MessageType, OxPacket, TloeHeader

node = MemoryNode(memory=Memory(parse_size("1M")))

open_frame = OxPacket(
    eth=EthHeader(dst_mac=0x020000000001, src_mac=0x020000000002),
    tloe=TloeHeader(msg_type=MessageType.OPEN_CONN),
).to_bytes()

for reply in node.handle_frame(open_frame):   # frames to send back, if any
    print(format_ox_header(OxPacket.from_bytes(reply)))
    print(format_payload(reply))
```

- `oxmem.protocol` holds the frame layout: `EthHeader`, `TloeHeader`,
  `TlMsgHeader`, `OxPacket` (with `to_bytes`, `from_bytes` and
  `add_message`), the `MessageType`, `Channel`, `AOpcode` and `DOpcode`
  enums, `is_ox_frame` and `ProtocolError`.
- `oxmem.connections` holds the peer table, `ConnectionTable`, which raises
  `OxConnectionError` for unknown peers, full tables and bad ids.
- `oxmem.memory` holds the backing store, `Memory`, with `read` and `write`.
- `oxmem.dump` formats packets, flits, TileLink headers and hex dumps as text.
- `oxmem.node` holds `MemoryNode` (`handle_frame`, `handle_normal_packet`),
  the `serve` loop over any object with `recv` and `send`, `parse_size` and
  the `main` command.

## What it does not do

- Only `PutFullData` and `Get` on Channel A are served; `PutPartialData`,
  atomics, hints and Channels B to E are ignored.
- Frames are not retransmitted, and credits and sequence numbers are
  reported but not enforced.
- Memory lives only as long as the process; nothing is saved to disk.

## Tests

```
pip install .[test]
pytest
```