import logging

from mklein.models.common.config import defaults
from mklein.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class QuantizationResolution:
    @staticmethod
    def resolve(stored: int | None, requested: int | None) -> int | None:
        if requested is not None and requested not in defaults.QUANTIZE_CHOICES:
            raise ValidationError(f"Quantization must be one of {defaults.QUANTIZE_CHOICES}, got {requested}")

        if stored is None:
            return requested

        if requested is not None and requested != stored:
            logger.warning(f"Model is pre-quantized at {stored}-bit. Ignoring requested {requested}-bit.")
        return stored
