import time
from hexfmt import hexdump
from uploader import TransportException

class BaseInterface:
    def __init__(self, enable_log=False):
        self.enable_log = enable_log

    def _log(self, msg):
        if self.enable_log:
            print(msg)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, type, value, traceback):
        self.close()

class BaseSerialInterface(BaseInterface):
    def close(self):
        if self.dev:
            self.dev.close()
            self.dev = None

    def write(self, data):
        data = bytes(data)

        self._log(">" + hexdump(data))

        start = time.time()

        nwrite = 0
        while nwrite < len(data):
            nwrite += self.dev.write(data[nwrite:]) or 0

            if nwrite < len(data) and time.time() - start >= self.timeout:
                raise TransportException("Write timeout. Check connections and that the bootloader is running.")

    def flush(self):
        pass

class FTDIInterface(BaseSerialInterface):
    def __init__(self, baudrate, timeout=2, enable_log=False):
        super().__init__(enable_log)

        self.port = "FTDI"
        self.baudrate = baudrate
        self.timeout = timeout
        self.dev = None

    def open(self):
        from pylibftdi.serial_device import SerialDevice

        self.dev = SerialDevice()
        self.dev.baudrate = self.baudrate

        # 8 data bits, one stop bit, no parity, no break
        self.dev.ftdi_fn.ftdi_set_line_property2(8, 0, 0, 0)

        # drop anything left over from before
        self.dev.read(1024)

        return self.dev.baudrate

class SerialInterface(BaseSerialInterface):
    def __init__(self, port, baudrate, timeout=2, enable_log=False):
        super().__init__(enable_log)

        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.dev = None

    def open(self):
        from serial import Serial, EIGHTBITS, PARITY_NONE, STOPBITS_ONE

        if self.port is None:
            self._detect_port()

        try:
            self.dev = Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=EIGHTBITS,
                parity=PARITY_NONE,
                stopbits=STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                timeout=self.timeout,
                write_timeout=self.timeout)
        except (OSError, ValueError) as ex:
            raise TransportException("Failed to open {}: {}".format(self.port, ex))

        self.dev.reset_input_buffer()

        return self.baudrate

    def _detect_port(self):
        from serial.tools.list_ports import comports

        for p in comports():
            if p.vid:
                self.port = p.device
                break
        else:
            raise TransportException("Failed to find a USB serial adapter.")

    def flush(self):
        if self.dev:
            self.dev.flush()

INTERFACE_NAMES = ("serial", "ftdi")

def make_interface(name, port, baudrate, timeout=2, enable_log=False):
    if name == "ftdi":
        return FTDIInterface(baudrate, timeout=timeout, enable_log=enable_log)

    return SerialInterface(port, baudrate, timeout=timeout, enable_log=enable_log)

class BurstSender:
    """Groups single bytes into bursts of device.bytes_per_burst bytes for an interface.

    Before the first burst the sync sequence (sync_byte repeated sync_byte_amount times) and
    the preamble byte are sent. The last partial burst goes out on flush()."""

    def __init__(self, iface, device):
        self.iface = iface
        self.device = device
        self.bytes_per_burst = device.bytes_per_burst

        self._buf = bytearray()
        self._synced = False
        self.bursts = 0

    def _sync(self):
        self.iface.write(bytes([self.device.sync_byte] * self.device.sync_byte_amount
            + [self.device.preamble]))

        self._synced = True

    def buffered_write(self, b):
        if not self._synced:
            self._sync()

        self._buf.append(b)

        if len(self._buf) == self.bytes_per_burst:
            self._send()

    def _send(self):
        self.iface.write(bytes(self._buf))
        self._buf = bytearray()
        self.bursts += 1

    def flush(self):
        if self._buf:
            self._send()

        self.iface.flush()

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        if type is None:
            self.flush()
