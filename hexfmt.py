"""Fixed width text rendering of the values that show up in hex files and messages."""

def byte_hex(value):
    return "{:02X}".format(value & 0xff)

def word_hex(value):
    return "{:04X}".format(value & 0xffff)

def dword_hex(value):
    return "{:08X}".format(value & 0xffffffff)

def dec(value):
    return "{:d}".format(value)

def hexdump(data):
    return " ".join("{:02x}".format(b) for b in data)
