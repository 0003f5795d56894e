import unittest

from devices import Device
from interfaces import BaseSerialInterface, BurstSender, FTDIInterface, SerialInterface, make_interface
from memimage import MemoryImage
from diagnostics import Diagnostics
from hexparser import DecodeResult
from uploader import TransportException, Uploader


class FakeInterface:
    def __init__(self):
        self.writes = []
        self.flushes = 0

    def write(self, data):
        self.writes.append(bytes(data))

    def flush(self):
        self.flushes += 1


class SlowDev:
    """Accepts at most `chunk` bytes per write call."""

    def __init__(self, chunk):
        self.chunk = chunk
        self.data = b""

    def write(self, data):
        n = min(self.chunk, len(data))
        self.data += bytes(data[:n])
        return n

    def close(self):
        pass


def make_device(**kwargs):
    attrs = dict(devid="test", name="Test", sync_byte=0x55, preamble=0xaa,
        sync_byte_amount=3, bytes_per_burst=4, max_size=256)
    attrs.update(kwargs)
    return Device(**attrs)


class BurstSenderTests(unittest.TestCase):
    def test_sync_sequence_then_bursts(self) -> None:
        iface = FakeInterface()
        sender = BurstSender(iface, make_device())

        for b in range(6):
            sender.buffered_write(b)

        self.assertEqual(iface.writes, [b"\x55\x55\x55\xaa", b"\x00\x01\x02\x03"])

        sender.flush()

        self.assertEqual(iface.writes[-1], b"\x04\x05")
        self.assertEqual(sender.bursts, 2)
        self.assertEqual(iface.flushes, 1)

    def test_nothing_sent_before_first_byte(self) -> None:
        iface = FakeInterface()

        with BurstSender(iface, make_device()):
            pass

        self.assertEqual(iface.writes, [])

    def test_context_manager_flushes(self) -> None:
        iface = FakeInterface()

        with BurstSender(iface, make_device(sync_byte_amount=0, bytes_per_burst=8)) as sender:
            sender.buffered_write(0x42)

        self.assertEqual(iface.writes, [b"\xaa", b"\x42"])

    def test_upload_through_sender(self) -> None:
        image = MemoryImage()
        diag = Diagnostics()
        for i in range(6):
            image.write(i, 0xf0 + i, diag)

        iface = FakeInterface()
        dev = make_device(sync_byte_amount=1, bytes_per_burst=2)
        uploader = Uploader(DecodeResult(image, diag), dev.max_size)

        with BurstSender(iface, dev) as sender:
            uploader.upload(sender)

        self.assertEqual(iface.writes, [
            b"\x55\xaa",
            b"\x00\x06",
            b"\xf0\xf1",
            b"\xf2\xf3",
            b"\xf4\xf5",
        ])


class SerialInterfaceTests(unittest.TestCase):
    def make_iface(self, dev, timeout=2):
        iface = SerialInterface("/dev/null", 115200, timeout=timeout)
        iface.dev = dev
        return iface

    def test_partial_writes_are_retried_until_done(self) -> None:
        dev = SlowDev(3)
        self.make_iface(dev).write(b"0123456789")

        self.assertEqual(dev.data, b"0123456789")

    def test_write_timeout(self) -> None:
        with self.assertRaises(TransportException):
            self.make_iface(SlowDev(0), timeout=0).write(b"abc")

    def test_close(self) -> None:
        iface = self.make_iface(SlowDev(1))
        iface.close()

        self.assertIsNone(iface.dev)

    def test_make_interface(self) -> None:
        self.assertIsInstance(make_interface("serial", "COM1", 9600), SerialInterface)
        self.assertIsInstance(make_interface("ftdi", None, 9600), FTDIInterface)
        self.assertIsInstance(make_interface("ftdi", None, 9600), BaseSerialInterface)


if __name__ == "__main__":
    unittest.main()
