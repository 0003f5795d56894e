#!/usr/bin/env python3

import argparse
import sys
import time
from devices import devices, find_device, search_paths
from hexfmt import dword_hex
from hexparser import load_hex, save_hex
from interfaces import BurstSender, INTERFACE_NAMES, make_interface
from memimage import AddressingMode
from uploader import LoaderException, Uploader

class HexLoad:
    BAR_LEN = 50

    def main(self, argv=None):
        parser = argparse.ArgumentParser(
            description="Check, convert and upload Intel HEX firmware images.")

        parser.add_argument("-p", "--port",
            help="serial port to use (default=first USB serial adapter found)")
        parser.add_argument("-b", "--baudrate", type=int, default=None,
            help="communication baudrate (default=from device configuration)")
        parser.add_argument("-i", "--interface", choices=INTERFACE_NAMES, default="serial",
            help="transport to use (default=serial)")
        parser.add_argument("-d", "--device",
            help="target device ID")
        parser.add_argument("-c", "--config-dir",
            help="extra directory to search for <device>.json files")
        parser.add_argument("-q", "--quiet", action="count",
            help="specify once to hide progress bars, twice to hide everything except errors")
        parser.add_argument("-v", "--verbose", action="store_true",
            help="enable debug logging (default=false)")

        subp = parser.add_subparsers()

        pcheck = subp.add_parser("check", help="decode a hex file and report problems")
        pcheck.add_argument("file", help=".hex file to check")
        pcheck.set_defaults(func=self.cmd_check)

        pconvert = subp.add_parser("convert", help="decode a hex file and write it back in minimal form")
        pconvert.add_argument("file", help=".hex file to read")
        pconvert.add_argument("output", help=".hex file to write")
        pmode = pconvert.add_mutually_exclusive_group()
        pmode.add_argument("--segmented", dest="mode", action="store_const",
            const=AddressingMode.SEGMENTED, help="use extended segment address records")
        pmode.add_argument("--linear", dest="mode", action="store_const",
            const=AddressingMode.LINEAR, help="use extended linear address records")
        pconvert.set_defaults(func=self.cmd_convert, mode=None)

        pdevices = subp.add_parser("devices", help="list built-in devices")
        pdevices.set_defaults(func=self.cmd_devices)

        pupload = subp.add_parser("upload", help="upload a hex file to the target bootloader")
        pupload.add_argument("file", help=".hex file to upload")
        pupload.set_defaults(func=self.cmd_upload)

        args = parser.parse_args(argv)

        self.verbosity = 2 - (args.quiet or 0)
        self.enable_log = args.verbose

        if not hasattr(args, "func"):
            self.log_error("Specify a subcommand.")
            parser.print_usage()
            return 1

        try:
            return args.func(args) or 0
        except LoaderException as ex:
            self.log_error("ERROR: {}".format(str(ex)))
            return 1
        except OSError as ex:
            self.log_error("ERROR: {}".format(str(ex)))
            return 1

    def log(self, msg):
        if self.verbosity >= 1:
            print(msg)

    def log_error(self, msg):
        print(msg, file=sys.stderr)

    def progress_bar(self, percent):
        if self.verbosity >= 2:
            progress = int(HexLoad.BAR_LEN * percent) // 100

            print("\r[{0}] {1:3d}%".format(
                ("#" * progress) + " " * (HexLoad.BAR_LEN - progress),
                round(percent)), end="")
            sys.stdout.flush()

    def decode(self, filename):
        self.log("Reading {}...".format(filename))

        result = load_hex(filename, enable_log=self.enable_log)

        for msg in result.diagnostics.warnings:
            self.log(msg)

        for msg in result.diagnostics.errors:
            self.log_error(msg)

        return result

    def cmd_check(self, args):
        image, diag = self.decode(args.file)

        self.log("\n{0} bytes in {1} segments, 0x{2}-0x{3}, {4} addressing.".format(
            len(image),
            len(image.segments()),
            dword_hex(image.start_address),
            dword_hex(max(image.end_address - 1, 0)),
            image.mode.value))

        for entry in image.entry:
            self.log("Entry point: {}".format(entry))

        self.log("{0} warnings, {1} errors.".format(diag.warning_count(), diag.error_count()))

        return 1 if diag.error_count() else 0

    def cmd_convert(self, args):
        image, diag = self.decode(args.file)

        if diag.error_count():
            self.log("Writing {} anyway; check the errors above.".format(args.output))

        save_hex(image, args.output, args.mode)

        self.log("Wrote {0} bytes to {1}.".format(len(image), args.output))

    def cmd_devices(self, args):
        for d in devices:
            print("{0:12} {1:12} max {2} bytes, {3} bytes per burst".format(
                d.devid, d.name, d.max_size, d.bytes_per_burst))

    def cmd_upload(self, args):
        if not args.device:
            raise LoaderException("Specify a target device with --device.")

        dev = find_device(args.device, search_paths(args.config_dir))

        self.log("Target is: {0} (max {1} bytes)".format(dev.name, dev.max_size))

        result = self.decode(args.file)

        uploader = Uploader(result, dev.max_size, enable_log=self.enable_log)
        if not uploader:
            raise LoaderException(uploader.error_message)

        if uploader.sparse:
            self.log("Warning: image is sparse; header announces {0} bytes but only {1} are stored."
                .format(uploader.size, len(result.image)))

        iface = make_interface(args.interface, args.port, args.baudrate or dev.baudrate,
            timeout=2, enable_log=self.enable_log)

        with iface:
            self.log("Opened {} at baudrate {}".format(iface.port, iface.baudrate))

            self.log("\nWriting {0} bytes to target.".format(uploader.size))

            start_time = time.time()

            with BurstSender(iface, dev) as sender:
                uploader.upload(sender, self.progress_bar)

        self.log("\nDone! Uploading took {0}ms."
            .format(round((time.time() - start_time) * 1000)))

def main():
    return HexLoad().main()

if __name__ == "__main__":
    sys.exit(main())
