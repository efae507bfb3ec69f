class ConverterError(Exception):
    pass


class UnsupportedArchiveError(ConverterError):
    def __init__(self, path, expected: str):
        self.path = path
        self.expected = expected
        super().__init__(f"Only {expected} files are supported, got: {path}")


class CorruptArchiveError(ConverterError):
    pass


class DecompressionError(ConverterError):
    def __init__(self, entry_name: str, error_message: str):
        self.entry_name = entry_name
        self.error_message = error_message
        super().__init__(f"Cannot read entry {entry_name!r}: {error_message}")


class ChartFormatError(ConverterError):
    def __init__(self, error_message: str, offset: int | None = None):
        self.error_message = error_message
        self.offset = offset
        if offset is None:
            super().__init__(f"Invalid chart: {error_message}")
        else:
            super().__init__(f"Invalid chart at byte {offset}: {error_message}")


class TranscodeError(ConverterError):
    def __init__(self, tool: str, error_message: str, stderr: str = ""):
        self.tool = tool
        self.error_message = error_message
        self.stderr = stderr
        message = f"{tool} failed: {error_message}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class InsufficientSyncDataError(ConverterError):
    def __init__(self, point_count: int):
        self.point_count = point_count
        super().__init__(
            f"At least 2 sync points are required, got {point_count}"
        )


class SongImportError(ConverterError):
    pass


class ImportCancelledError(ConverterError):
    pass
