# Intel HEX decoding and encoding.
#
# Decoding never raises on malformed content. Everything wrong with the input ends up in the
# Diagnostics returned next to the image, and as much of the file as possible is salvaged.

from collections import namedtuple
from enum import IntEnum
from diagnostics import Diagnostics
from hexfmt import byte_hex, dec, dword_hex
from memimage import AddressingMode, LinearEntry, MemoryImage, SegmentEntry, MAX_ADDRESS, SEGMENTED_LIMIT

RECORD_MARK = ":"
EOF_RECORD = ":00000001FF"

# Maximum number of data bytes per encoded data record
DATA_RECORD_LEN = 16

class RecordType(IntEnum):
    DATA = 0x00
    END_OF_FILE = 0x01
    EXTENDED_SEGMENT_ADDRESS = 0x02
    START_SEGMENT_ADDRESS = 0x03
    EXTENDED_LINEAR_ADDRESS = 0x04
    START_LINEAR_ADDRESS = 0x05

DecodeResult = namedtuple("DecodeResult", ["image", "diagnostics"])

def checksum(values):
    """Two's complement of the 8-bit sum of values."""

    return -sum(values) & 0xff

def make_record(rtype, offset, payload=b""):
    lb = bytes([len(payload), (offset >> 8) & 0xff, offset & 0xff, rtype]) + bytes(payload)

    return RECORD_MARK + "".join(byte_hex(b) for b in lb) + byte_hex(checksum(lb))

def _word(b, i):
    return (b[i] << 8) | b[i + 1]

class HexDecoder:
    def __init__(self, enable_log=False):
        self.enable_log = enable_log

        self.image = MemoryImage()
        self.diag = Diagnostics()
        self.base = 0
        self.found_eof = False
        self.line_num = 0

        self._handlers = {
            RecordType.DATA: self._data,
            RecordType.END_OF_FILE: self._end_of_file,
            RecordType.EXTENDED_SEGMENT_ADDRESS: self._extended_segment,
            RecordType.START_SEGMENT_ADDRESS: self._start_segment,
            RecordType.EXTENDED_LINEAR_ADDRESS: self._extended_linear,
            RecordType.START_LINEAR_ADDRESS: self._start_linear,
        }

    def _log(self, msg):
        if self.enable_log:
            print(msg)

    def _error(self, msg):
        self.diag.add_error(msg)

    def decode(self, lines):
        """Decode an iterable of lines (str or ASCII bytes). Returns a DecodeResult."""

        for line in lines:
            if isinstance(line, bytes):
                line = line.decode("ascii", errors="replace")

            line = line.strip()

            if not line:
                # blank lines before the first record are tolerated, afterwards they end the file
                if self.line_num == 0:
                    continue
                break

            self.line_num += 1

            if not line.startswith(RECORD_MARK):
                self.diag.add_warning("Line without record mark ':' found @ line "
                    + dec(self.line_num))

                # chances are this isn't a hex file at all
                if self.line_num == 1:
                    self._error("Intel HEX File decode aborted; ':' missing in first line.")
                    return DecodeResult(self.image, self.diag)

                continue

            self._decode_line(line[len(RECORD_MARK):])

        if not self.found_eof:
            self.diag.add_warning("No End Of File record found.")

        if self.image.mode is AddressingMode.SEGMENTED and self.image.end_address > SEGMENTED_LIMIT:
            self.image.mode = AddressingMode.LINEAR

        self._log("Decoded {} lines.".format(self.line_num))

        return DecodeResult(self.image, self.diag)

    def _decode_line(self, digits):
        n = dec(self.line_num)

        if any(c.isspace() for c in digits):
            self._error("Can't convert '{}' @ line {} to hex.".format(digits, n))
            return

        if len(digits) % 2 != 0:
            self._error("Odd number of characters in line " + n)
            return

        try:
            lb = bytes.fromhex(digits)
        except ValueError:
            self._error("Can't convert '{}' @ line {} to hex.".format(digits, n))
            return

        if len(lb) < 5:
            self._error("Record @ line {} is too short ({} bytes).".format(n, len(lb)))
            return

        if sum(lb) & 0xff != 0:
            self._error("Checksum error @ line {}; calculated 0x{} expected 0x{}".format(
                n, byte_hex(checksum(lb[:-1])), byte_hex(lb[-1])))
            return

        length = lb[0]
        if length + 5 != len(lb):
            self._error("Record length 0x{} @ line {} doesn't match the {} data bytes found."
                .format(byte_hex(length), n, len(lb) - 5))
            return

        offset = _word(lb, 1)
        payload = lb[4:-1]

        try:
            rtype = RecordType(lb[3])
        except ValueError:
            self._error("Unknown Intel HEX record @ line " + n)
            return

        self._handlers[rtype](offset, payload)

    def _data(self, offset, payload):
        self._log("Data Record beginning @ 0x" + dword_hex(offset))

        # the low 16 bits of the base come from the record, the rest from the last extension
        self.base = (self.base & 0xffff0000) + offset

        for b in payload:
            self.image.write(self.base, b, self.diag)

            # conflicting bytes still advance the cursor
            self.base = (self.base + 1) & MAX_ADDRESS

    def _end_of_file(self, offset, payload):
        if self.found_eof:
            self._error("Additional End Of File record @ line {} found.".format(
                dec(self.line_num)))

        self.found_eof = True

    def _extended_address(self, name, payload, shift, mode):
        if len(payload) != 2:
            self._error("{} @ line {} not 2 bytes as required.".format(
                name, dec(self.line_num)))
            return

        self.base = _word(payload, 0) << shift
        self.image.mode = mode

        self._log("{} 0x{}".format(name, dword_hex(self.base)))

    def _extended_segment(self, offset, payload):
        self._extended_address("Extended Segment Address", payload, 4,
            AddressingMode.SEGMENTED)

    def _extended_linear(self, offset, payload):
        self._extended_address("Extended Linear Address", payload, 16,
            AddressingMode.LINEAR)

    def _start_address(self, name, other_name, entry, existing, other):
        n = dec(self.line_num)

        if entry is not None and existing is None:
            self.image.entry.set(entry)
            self._log("{} - {}".format(name, entry))
        elif existing is not None:
            self._error("{} record appears again @ line {}; repeated record ignored."
                .format(name, n))

        # the two start records are mutually exclusive
        if other is not None:
            self._error("{} record found @ line {} but {} already exists."
                .format(name, n, other_name))

        if entry is None:
            self._error("{} @ line {} not 4 bytes as required.".format(name, n))

    def _start_segment(self, offset, payload):
        entry = SegmentEntry(_word(payload, 0), _word(payload, 2)) if len(payload) == 4 else None

        self._start_address("Start Segment Address", "Start Linear Address", entry,
            self.image.entry.segment, self.image.entry.linear)

    def _start_linear(self, offset, payload):
        entry = LinearEntry(int.from_bytes(payload, "big")) if len(payload) == 4 else None

        self._start_address("Start Linear Address", "Start Segment Address", entry,
            self.image.entry.linear, self.image.entry.segment)

def decode_hex(lines, enable_log=False):
    return HexDecoder(enable_log).decode(lines)

def load_hex(filename, enable_log=False):
    with open(filename, "r", encoding="ascii", errors="replace") as f:
        return decode_hex(f, enable_log)

def encode_hex(image, mode=None):
    """Encode a MemoryImage into a list of record lines (without line terminators).

    mode overrides the addressing mode stored in the image. Records are packed with up to
    DATA_RECORD_LEN consecutive bytes; extension records are only emitted when the address
    window changes. The decoder starts at base 0 so a leading zero extension is left out.
    Images reaching past 1 MiB are always written with linear records."""

    mode = mode or image.mode

    # anything above 1 MiB only fits in linear records
    if image.end_address > SEGMENTED_LIMIT:
        mode = AddressingMode.LINEAR

    if mode is AddressingMode.SEGMENTED:
        shift, ext_type = 4, RecordType.EXTENDED_SEGMENT_ADDRESS
    else:
        shift, ext_type = 16, RecordType.EXTENDED_LINEAR_ADDRESS

    lines = []
    items = image.items()
    window = 0

    i = 0
    while i < len(items):
        start = items[i][0]

        if (start >> shift) != window:
            window = start >> shift
            lines.append(make_record(ext_type, 0, window.to_bytes(2, "big")))

        payload = bytearray([items[i][1]])
        i += 1

        while (i < len(items)
                and len(payload) < DATA_RECORD_LEN
                and items[i][0] == items[i - 1][0] + 1
                and items[i][0] & 0xffff != 0):
            payload.append(items[i][1])
            i += 1

        lines.append(make_record(RecordType.DATA, start & 0xffff, payload))

    entry = image.entry

    if entry.segment is not None:
        lines.append(make_record(RecordType.START_SEGMENT_ADDRESS, 0,
            entry.segment.cs.to_bytes(2, "big") + entry.segment.ip.to_bytes(2, "big")))

    if entry.linear is not None:
        lines.append(make_record(RecordType.START_LINEAR_ADDRESS, 0,
            entry.linear.eip.to_bytes(4, "big")))

    lines.append(EOF_RECORD)

    return lines

def write_hex(image, f, mode=None):
    for line in encode_hex(image, mode):
        f.write(line + "\n")

def save_hex(image, filename, mode=None):
    with open(filename, "w", encoding="ascii", newline="\n") as f:
        write_hex(image, f, mode)
