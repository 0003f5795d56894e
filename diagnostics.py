from hexfmt import dec

class Diagnostics:
    """Numbered warning and error messages collected over one decode session.

    Messages are only ever appended. A session is considered good when
    error_count() is zero; warnings are advisory."""

    def __init__(self):
        self.warnings = []
        self.errors = []

    def add_warning(self, msg):
        self.warnings.append(dec(len(self.warnings) + 1) + " Warning: " + msg)

    def add_error(self, msg):
        self.errors.append(dec(len(self.errors) + 1) + " Error: " + msg)

    def warning_count(self):
        return len(self.warnings)

    def error_count(self):
        return len(self.errors)

    def __iter__(self):
        yield from self.warnings
        yield from self.errors
