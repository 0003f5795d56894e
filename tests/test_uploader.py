"""Size-prefixed streaming of a decoded image into a burst sink."""

import unittest

from diagnostics import Diagnostics
from hexparser import DecodeResult, decode_hex
from memimage import MemoryImage
from uploader import CapacityException, LoaderException, UploadState, Uploader, max_header_value


class FakeSink:
    def __init__(self, bytes_per_burst, fail_after=None):
        self.bytes_per_burst = bytes_per_burst
        self.fail_after = fail_after
        self.written = []

    def buffered_write(self, b):
        if self.fail_after is not None and len(self.written) >= self.fail_after:
            raise OSError("port went away")

        self.written.append(b)


def make_result(data, start=0):
    image = MemoryImage()
    diag = Diagnostics()

    for i, b in enumerate(data):
        image.write(start + i, b, diag)

    return DecodeResult(image, diag)


class UploaderTests(unittest.TestCase):
    def test_max_header_value(self) -> None:
        self.assertEqual(max_header_value(1), 0xff)
        self.assertEqual(max_header_value(4), 0xffffffff)

    def test_image_larger_than_capacity_is_refused(self) -> None:
        uploader = Uploader(make_result(bytes(300)), 256)
        sink = FakeSink(4)

        self.assertFalse(uploader)
        self.assertIs(uploader.state, UploadState.NOT_READY)
        self.assertEqual(uploader.error_message, "Unable to write 300 in the available space of 256")

        with self.assertRaises(CapacityException):
            uploader.upload(sink)

        self.assertEqual(sink.written, [])

    def test_decode_errors_are_refused(self) -> None:
        result = decode_hex([":0100000041BE", ":0100000042BD", ":00000001FF"])
        uploader = Uploader(result, 1024)

        self.assertFalse(uploader)
        self.assertEqual(uploader.error_message, "There were 1 errors while parsing the hex file!")

    def test_size_must_fit_in_burst(self) -> None:
        uploader = Uploader(make_result(bytes(300)), 1024)
        sink = FakeSink(1)

        self.assertTrue(uploader)

        with self.assertRaises(CapacityException):
            uploader.upload(sink)

        self.assertEqual(sink.written, [])
        self.assertIs(uploader.state, UploadState.READY)

    def test_ten_bytes_with_four_byte_burst(self) -> None:
        data = bytes(range(0x10, 0x1a))
        uploader = Uploader(make_result(data), 256)
        sink = FakeSink(4)
        progress = []

        uploader.upload(sink, progress.append)

        self.assertEqual(sink.written[:4], [0, 0, 0, 10])
        self.assertEqual(bytes(sink.written[4:]), data)
        self.assertIs(uploader.state, UploadState.DONE)

        self.assertEqual(progress[0], 0)
        self.assertEqual(progress[-1], 100)
        self.assertEqual(progress.count(100), 1)
        self.assertTrue(all(a < b for a, b in zip(progress, progress[1:])))
        self.assertEqual([round(p) for p in progress], list(range(0, 101, 10)))

    def test_header_is_big_endian(self) -> None:
        uploader = Uploader(make_result(bytes(0x1234)), 0x10000)
        sink = FakeSink(2)

        uploader.upload(sink)

        self.assertEqual(sink.written[:2], [0x12, 0x34])
        self.assertEqual(len(sink.written), 2 + 0x1234)

    def test_sparse_image_size_is_address_derived(self) -> None:
        result = make_result(b"\xaa\xbb", start=0x100)
        uploader = Uploader(result, 0x1000)
        sink = FakeSink(2)

        self.assertEqual(uploader.size, 0x102)
        self.assertTrue(uploader.sparse)

        uploader.upload(sink)

        self.assertEqual(sink.written, [0x01, 0x02, 0xaa, 0xbb])

    def test_contiguous_image_from_zero_is_not_sparse(self) -> None:
        self.assertFalse(Uploader(make_result(b"\x01\x02\x03"), 16).sparse)
        self.assertTrue(Uploader(make_result(b"\x01", start=2), 16).sparse)

    def test_empty_image(self) -> None:
        uploader = Uploader(make_result(b""), 16)
        sink = FakeSink(2)
        progress = []

        uploader.upload(sink, progress.append)

        self.assertEqual(sink.written, [0, 0])
        self.assertEqual(progress, [100])

    def test_sink_failure_stops_streaming(self) -> None:
        uploader = Uploader(make_result(bytes(10)), 256)
        sink = FakeSink(4, fail_after=6)

        with self.assertRaises(OSError):
            uploader.upload(sink)

        self.assertEqual(len(sink.written), 6)
        self.assertIs(uploader.state, UploadState.STREAMING)

    def test_upload_only_once(self) -> None:
        uploader = Uploader(make_result(bytes(4)), 256)
        uploader.upload(FakeSink(1))

        with self.assertRaises(LoaderException):
            uploader.upload(FakeSink(1))


if __name__ == "__main__":
    unittest.main()
