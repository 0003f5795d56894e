# Upload protocol parameters per target device.
#
# A handful of targets are built in. Anything else (or an override of a built-in target) is
# described by a <devid>.json file in one of the config directories, e.g.
#
#   {"id": "mydev", "name": "My Device", "syncByte": "0x55", "preamble": "0xAA",
#    "syncByteAmount": 4, "bytesPerBurst": 4, "maxSize": 32768, "baudrate": 115200}

import json
import os
from uploader import ConfigException

CONFIG_ENV = "HEXLOAD_CONFIG_DIR"

# json key -> (attribute, required)
JSON_KEYS = {
    "id": ("devid", False),
    "name": ("name", False),
    "syncByte": ("sync_byte", True),
    "preamble": ("preamble", True),
    "syncByteAmount": ("sync_byte_amount", True),
    "bytesPerBurst": ("bytes_per_burst", True),
    "maxSize": ("max_size", True),
    "baudrate": ("baudrate", False),
}

BYTE_ATTRS = ("sync_byte", "preamble")

DEFAULT_BAUDRATE = 115200

class Device:
    def __init__(self, **kwargs):
        self.baudrate = DEFAULT_BAUDRATE

        for key in kwargs:
            setattr(self, key, kwargs[key])

    def __repr__(self):
        return "Device({})".format(self.devid)

devices = [
    Device(devid="atmega328p", name="ATmega328P", sync_byte=0x55, preamble=0xaa, sync_byte_amount=4, bytes_per_burst=2, max_size=0x7000, baudrate=115200),
    Device(devid="atmega2560", name="ATmega2560", sync_byte=0x55, preamble=0xaa, sync_byte_amount=4, bytes_per_burst=4, max_size=0x3e000, baudrate=115200),
    Device(devid="stm32f103", name="STM32F103", sync_byte=0x7f, preamble=0x79, sync_byte_amount=2, bytes_per_burst=4, max_size=0x10000, baudrate=115200),
    Device(devid="lpc1114", name="LPC1114", sync_byte=0x3f, preamble=0x0d, sync_byte_amount=1, bytes_per_burst=4, max_size=0x8000, baudrate=57600),
]

def search_paths(config_dir=None):
    """Directories searched for device files, most specific first."""

    paths = []

    if config_dir:
        paths.append(config_dir)

    if os.environ.get(CONFIG_ENV):
        paths.append(os.environ[CONFIG_ENV])

    paths.append(os.path.join(os.path.expanduser("~"), ".config", "hexload"))
    paths.append("devices")

    return paths

def _parse_value(key, value):
    if isinstance(value, str):
        try:
            value = int(value, 0)
        except ValueError:
            raise ConfigException("Value '{}' of '{}' is not a number.".format(value, key))

    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigException("Value of '{}' must be a non-negative integer.".format(key))

    return value

def parse_device(doc, devid):
    if not isinstance(doc, dict):
        raise ConfigException("Device file for '{}' must contain a JSON object.".format(devid))

    attrs = {"devid": devid, "name": devid}

    for key, (attr, required) in JSON_KEYS.items():
        if key not in doc:
            if required:
                raise ConfigException("Device file for '{}' is missing '{}'.".format(devid, key))
            continue

        if attr in ("devid", "name"):
            attrs[attr] = str(doc[key])
        else:
            attrs[attr] = _parse_value(key, doc[key])

    for attr in BYTE_ATTRS:
        if attrs[attr] > 0xff:
            raise ConfigException("'{}' of device '{}' does not fit in a byte.".format(attr, devid))

    if attrs["bytes_per_burst"] < 1:
        raise ConfigException("bytesPerBurst of device '{}' must be at least 1.".format(devid))

    return Device(**attrs)

def load_device_file(filename, devid):
    try:
        with open(filename, "r") as f:
            doc = json.load(f)
    except json.JSONDecodeError as ex:
        raise ConfigException("Failed to parse {}: {}".format(filename, ex))
    except OSError as ex:
        raise ConfigException("Failed to read {}: {}".format(filename, ex))

    return parse_device(doc, devid)

def find_device(devid, paths=None):
    """Resolve a device id, preferring device files over the built-in table."""

    for path in (search_paths() if paths is None else paths):
        filename = os.path.join(path, devid + ".json")

        if os.path.isfile(filename):
            return load_device_file(filename, devid)

    dev = next((d for d in devices if d.devid == devid.lower()), None)

    if not dev:
        raise ConfigException("Device '{0}' is not supported.".format(devid))

    return dev
