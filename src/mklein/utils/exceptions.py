class MKleinException(Exception):
    """base class for all custom exceptions in mklein package."""


class LoadError(MKleinException):
    """the model directory could not be turned into a usable model."""


class MissingFileError(LoadError):
    """a component directory, shard or tokenizer file is absent."""


class ShapeMismatchError(LoadError):
    """a stored tensor does not have the shape the model declares."""


class MissingWeightError(ShapeMismatchError):
    """a tensor the model declares is not present in the weight store."""


class UnsupportedFormatError(LoadError):
    """a weight or config file could not be parsed."""


class EncodingError(MKleinException):
    """a prompt or image could not be turned into model inputs."""


class TokenizationError(EncodingError):
    """the tokenizer rejected the prompt."""


class EncoderNotLoadedError(EncodingError):
    """text encoding was requested while the text encoder is not resident."""


class EmbeddingDimensionError(EncodingError):
    """embedding width or buffer size does not match the transformer's text dimension."""


class NumericFailure(MKleinException):
    """the backend failed or produced non-finite values mid-generation."""


class ValidationError(MKleinException, ValueError):
    """a caller supplied parameter or buffer is out of range or inconsistent."""


class BufferIOError(MKleinException, OSError):
    """a raw embedding or noise file could not be read or written."""


class ImageSavingException(MKleinException):
    """error occurred while attempting to save image to storage."""


class MKleinUserException(MKleinException):
    """an exception raised by user behavior or intention."""


class StopImageGenerationException(MKleinUserException):
    """user has requested to stop a image generation in progress."""
