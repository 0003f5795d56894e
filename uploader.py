import time
from enum import Enum

class DummyProfiler:
    def step(self, title): pass

class SimpleProfiler:
    def __init__(self):
        self.prev = time.monotonic()

    def step(self, msg):
        now = time.monotonic()
        print("{:10.6f}s {}".format(now - self.prev, msg))
        self.prev = now

class LoaderException(Exception):
    pass

class CapacityException(LoaderException):
    pass

class ConfigException(LoaderException):
    pass

class TransportException(LoaderException):
    pass

class UploadState(Enum):
    NOT_READY = "not ready"
    READY = "ready"
    STREAMING = "streaming"
    DONE = "done"

def max_header_value(nbytes):
    """Largest size that fits into a big-endian header of nbytes bytes."""

    return (1 << (8 * nbytes)) - 1

class Uploader:
    """Streams a decoded image into a burst sink as a size header followed by the image bytes.

    The sink needs a bytes_per_burst attribute and a buffered_write(byte) method. Nothing is
    retried here; if the sink raises, streaming stops and the exception propagates."""

    def __init__(self, result, max_size, enable_log=False):
        self.image, self.diag = result
        self.max_size = max_size
        self.enable_log = enable_log

        self.size = self.image.size
        self.error_message = None
        self.state = UploadState.NOT_READY

        if self.size > max_size:
            self.error_message = "Unable to write {} in the available space of {}".format(
                self.size, max_size)
        elif self.diag.error_count() > 0:
            self.error_message = "There were {} errors while parsing the hex file!".format(
                self.diag.error_count())
        else:
            self.state = UploadState.READY

    def __bool__(self):
        return self.state is not UploadState.NOT_READY

    @property
    def sparse(self):
        """True when the header size covers addresses with no stored byte behind them."""

        return len(self.image) != self.size

    def _log(self, msg):
        if self.enable_log:
            print(msg)

    def upload(self, sink, progress=None):
        """Write the image to sink. progress, if given, is called with a percentage before
        every image byte and once with 100 at the end."""

        if self.state is UploadState.NOT_READY:
            raise CapacityException(self.error_message)

        if self.state is not UploadState.READY:
            raise LoaderException("Image upload was already started.")

        burst = sink.bytes_per_burst

        if self.size > max_header_value(burst):
            raise CapacityException("Can't write filesize within one buffer length!")

        if self.sparse:
            self._log("Image is sparse: header announces {} bytes, {} are stored".format(
                self.size, len(self.image)))

        prof = (SimpleProfiler if self.enable_log else DummyProfiler)()
        prof.step("Starting upload")

        self.state = UploadState.STREAMING

        for b in self.size.to_bytes(burst, "big"):
            sink.buffered_write(b)

        prof.step("Write size header")

        total = len(self.image)

        for counter, (_, b) in enumerate(self.image.items()):
            if progress:
                progress(counter / total * 100)

            sink.buffered_write(b)

        if progress:
            progress(100)

        prof.step("Write image")

        self.state = UploadState.DONE
