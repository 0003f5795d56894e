# A dict keyed by absolute address is the simplest way to hold a sparse image. Sorting on
# iteration is fine for firmware sized images.

from collections import namedtuple
from enum import Enum
from hexfmt import byte_hex, dword_hex, word_hex

MAX_ADDRESS = 0xffffffff

# segment:offset addressing reaches 1 MiB
SEGMENTED_LIMIT = 0x100000

class AddressingMode(Enum):
    LINEAR = "linear"
    SEGMENTED = "segmented"

class SegmentEntry(namedtuple("SegmentEntry", ["cs", "ip"])):
    __slots__ = ()

    def __str__(self):
        return "CS 0x{} IP 0x{}".format(word_hex(self.cs), word_hex(self.ip))

class LinearEntry(namedtuple("LinearEntry", ["eip"])):
    __slots__ = ()

    def __str__(self):
        return "EIP 0x{}".format(dword_hex(self.eip))

class EntryPoints:
    """Program start address, as CS:IP and/or EIP.

    Only the first entry of each kind is kept. A well formed file has at most one of the
    two, but a malformed one can end up with both and both are retained."""

    def __init__(self):
        self.segment = None
        self.linear = None

    def set(self, entry):
        """Store entry. Returns False (and stores nothing) if one of its kind already exists."""

        if isinstance(entry, SegmentEntry):
            if self.segment is not None:
                return False
            self.segment = entry
        else:
            if self.linear is not None:
                return False
            self.linear = entry

        return True

    def __iter__(self):
        return (e for e in (self.segment, self.linear) if e is not None)

class MemoryImage:
    def __init__(self):
        self._mem = {}
        self.mode = AddressingMode.LINEAR
        self.entry = EntryPoints()

    def write(self, addr, value, diag):
        """Write a single byte, reporting overlaps to diag. Existing content always wins."""

        old = self._mem.get(addr)

        if old is None:
            self._mem[addr] = value
        elif old == value:
            diag.add_warning("Location 0x{} already contains data 0x{}".format(
                dword_hex(addr), byte_hex(value)))
        else:
            diag.add_error("Couldn't add 0x{} @ 0x{}; already contains 0x{}".format(
                byte_hex(value), dword_hex(addr), byte_hex(old)))

    def __len__(self):
        return len(self._mem)

    def __contains__(self, addr):
        return addr in self._mem

    def __getitem__(self, addr):
        return self._mem[addr]

    def __eq__(self, other):
        if not isinstance(other, MemoryImage):
            return NotImplemented
        return self._mem == other._mem

    def items(self):
        """(address, byte) pairs in ascending address order."""

        return sorted(self._mem.items())

    def addresses(self):
        return sorted(self._mem)

    def data(self):
        return bytes(b for _, b in self.items())

    @property
    def start_address(self):
        return min(self._mem) if self._mem else 0

    @property
    def end_address(self):
        """One past the highest stored address."""

        return max(self._mem) + 1 if self._mem else 0

    @property
    def size(self):
        return self.end_address

    def is_contiguous(self):
        return len(self._mem) == self.end_address - self.start_address

    def segments(self):
        """Runs of consecutive addresses as (start, bytes) tuples."""

        segments = []
        start = None
        buf = bytearray()
        prev = None

        for addr, b in self.items():
            if prev is None or addr != prev + 1:
                if buf:
                    segments.append((start, bytes(buf)))
                start = addr
                buf = bytearray()

            buf.append(b)
            prev = addr

        if buf:
            segments.append((start, bytes(buf)))

        return segments
