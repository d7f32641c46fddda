"""Exception classes of the canvas core."""


class MaBlocksError(Exception):
    """Base exception for canvas core errors."""

    pass


class DecodeFailure(MaBlocksError):
    """Raised when a media source can not be read or decoded."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to decode {path}: {reason}")
        self.path = path
        self.reason = reason


class UnsupportedFormatError(DecodeFailure):
    """Raised when a source is not an image format the decoder understands."""

    pass


class BlockNotFoundError(MaBlocksError, KeyError):
    """Raised when indexing the block registry with an unknown id."""

    pass
