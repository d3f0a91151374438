class ZarrKVError(Exception):
    """Base class of all errors raised by zarrkv."""


class InvalidPathError(ZarrKVError, ValueError):
    """A logical path contains a `.` or `..` segment or is not a string."""


class PathConflictError(ZarrKVError):
    """An array and a group would live at the same path."""


class NodeNotFoundError(ZarrKVError, KeyError):
    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"no array or group found at path {self.path!r}"


class MetadataError(ZarrKVError, ValueError):
    """A metadata document is malformed."""


class MissingFieldError(MetadataError):
    def __init__(self, field: str, document: str):
        super().__init__(f"required field {field!r} is missing from {document}")
        self.field = field
        self.document = document


class UnexpectedFieldError(MetadataError):
    def __init__(self, field: str, document: str):
        super().__init__(f"unexpected field {field!r} in {document}")
        self.field = field
        self.document = document


class InvalidDTypeError(MetadataError):
    pass


class InvalidFillValueError(MetadataError):
    pass


class InvalidChunkCoordinateError(ZarrKVError, IndexError):
    pass


class CodecError(ZarrKVError):
    pass


class UnknownCodecError(CodecError, ValueError):
    def __init__(self, codec_id: str):
        super().__init__(f"codec not available: {codec_id!r}")
        self.codec_id = codec_id


class CodecFailureError(CodecError):
    pass
