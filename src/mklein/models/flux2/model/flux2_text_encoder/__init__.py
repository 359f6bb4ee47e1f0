from mklein.models.flux2.model.flux2_text_encoder.prompt_encoder import Flux2PromptEncoder
from mklein.models.flux2.model.flux2_text_encoder.qwen3_text_encoder import Qwen3TextEncoder
from mklein.models.flux2.model.flux2_text_encoder.text_encoder_residency import ResidencyState, TextEncoderResidency

__all__ = ["Flux2PromptEncoder", "Qwen3TextEncoder", "ResidencyState", "TextEncoderResidency"]
