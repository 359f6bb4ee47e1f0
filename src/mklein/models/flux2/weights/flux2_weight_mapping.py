"""Weight mappings for FLUX.2 klein.

Maps Hugging Face (diffusers / transformers) tensor names to module paths.
"""

from typing import List

from mklein.models.common.weights.mapping.weight_mapping import WeightMapping, WeightTarget
from mklein.models.common.weights.mapping.weight_transforms import WeightTransforms


class Flux2WeightMapping(WeightMapping):
    @staticmethod
    def get_transformer_mapping() -> List[WeightTarget]:
        # The module tree mirrors diffusers, so every tensor keeps its name
        return Flux2WeightMapping._same_names(
            # Input embedders and output projection
            "x_embedder.weight",
            "context_embedder.weight",
            "proj_out.weight",
            "norm_out.linear.weight",
            # Time/guidance embeddings
            "time_guidance_embed.timestep_embedder.linear_1.weight",
            "time_guidance_embed.timestep_embedder.linear_2.weight",
            "time_guidance_embed.guidance_embedder.linear_1.weight",
            "time_guidance_embed.guidance_embedder.linear_2.weight",
            # Modulations shared by all blocks
            "double_stream_modulation_img.linear.weight",
            "double_stream_modulation_txt.linear.weight",
            "single_stream_modulation.linear.weight",
            # Double stream blocks
            "transformer_blocks.{block}.attn.to_q.weight",
            "transformer_blocks.{block}.attn.to_k.weight",
            "transformer_blocks.{block}.attn.to_v.weight",
            "transformer_blocks.{block}.attn.to_out.0.weight",
            "transformer_blocks.{block}.attn.add_q_proj.weight",
            "transformer_blocks.{block}.attn.add_k_proj.weight",
            "transformer_blocks.{block}.attn.add_v_proj.weight",
            "transformer_blocks.{block}.attn.to_add_out.weight",
            "transformer_blocks.{block}.attn.norm_q.weight",
            "transformer_blocks.{block}.attn.norm_k.weight",
            "transformer_blocks.{block}.attn.norm_added_q.weight",
            "transformer_blocks.{block}.attn.norm_added_k.weight",
            "transformer_blocks.{block}.ff.linear_in.weight",
            "transformer_blocks.{block}.ff.linear_out.weight",
            "transformer_blocks.{block}.ff_context.linear_in.weight",
            "transformer_blocks.{block}.ff_context.linear_out.weight",
            # Single stream blocks
            "single_transformer_blocks.{block}.attn.to_qkv_mlp_proj.weight",
            "single_transformer_blocks.{block}.attn.to_out.weight",
            "single_transformer_blocks.{block}.attn.norm_q.weight",
            "single_transformer_blocks.{block}.attn.norm_k.weight",
        )

    @staticmethod
    def get_text_encoder_mapping() -> List[WeightTarget]:
        # lm_head is not needed for hidden state extraction and is left unmapped
        names = [
            "embed_tokens.weight",
            "norm.weight",
            "layers.{block}.input_layernorm.weight",
            "layers.{block}.post_attention_layernorm.weight",
            "layers.{block}.self_attn.q_proj.weight",
            "layers.{block}.self_attn.k_proj.weight",
            "layers.{block}.self_attn.v_proj.weight",
            "layers.{block}.self_attn.o_proj.weight",
            "layers.{block}.self_attn.q_norm.weight",
            "layers.{block}.self_attn.k_norm.weight",
            "layers.{block}.mlp.gate_proj.weight",
            "layers.{block}.mlp.up_proj.weight",
            "layers.{block}.mlp.down_proj.weight",
        ]
        return [WeightTarget(to_pattern=name, from_pattern=[f"model.{name}", name]) for name in names]

    @staticmethod
    def get_vae_mapping() -> List[WeightTarget]:
        mapping = Flux2WeightMapping._same_names(
            "bn.running_mean",
            "bn.running_var",
            "encoder.conv_norm_out.weight",
            "encoder.conv_norm_out.bias",
            "decoder.conv_norm_out.weight",
            "decoder.conv_norm_out.bias",
        )
        for conv in (
            "quant_conv",
            "post_quant_conv",
            "encoder.conv_in",
            "encoder.conv_out",
            "decoder.conv_in",
            "decoder.conv_out",
            "encoder.down_blocks.{block}.downsamplers.0.conv",
            "decoder.up_blocks.{block}.upsamplers.0.conv",
        ):
            mapping += Flux2WeightMapping._conv(conv)
        for resnet in (
            "encoder.down_blocks.{block}.resnets.{layer}",
            "decoder.up_blocks.{block}.resnets.{layer}",
            "encoder.mid_block.resnets.{layer}",
            "decoder.mid_block.resnets.{layer}",
        ):
            mapping += Flux2WeightMapping._same_names(
                f"{resnet}.norm1.weight",
                f"{resnet}.norm1.bias",
                f"{resnet}.norm2.weight",
                f"{resnet}.norm2.bias",
            )
            for conv in ("conv1", "conv2", "conv_shortcut"):
                mapping += Flux2WeightMapping._conv(f"{resnet}.{conv}")
        for attention in ("encoder.mid_block.attentions.0", "decoder.mid_block.attentions.0"):
            mapping += Flux2WeightMapping._same_names(
                f"{attention}.group_norm.weight",
                f"{attention}.group_norm.bias",
                f"{attention}.to_q.bias",
                f"{attention}.to_k.bias",
                f"{attention}.to_v.bias",
            )
            # Older exports store the projections as 1x1 convolutions
            for proj in ("to_q", "to_k", "to_v"):
                mapping.append(
                    WeightTarget(
                        to_pattern=f"{attention}.{proj}.weight",
                        from_pattern=[f"{attention}.{proj}.weight"],
                        transform=WeightTransforms.squeeze_1x1_conv_to_linear,
                    )
                )
            mapping += [
                WeightTarget(
                    to_pattern=f"{attention}.to_out.weight",
                    from_pattern=[f"{attention}.to_out.0.weight"],
                    transform=WeightTransforms.squeeze_1x1_conv_to_linear,
                ),
                WeightTarget(
                    to_pattern=f"{attention}.to_out.bias",
                    from_pattern=[f"{attention}.to_out.0.bias"],
                ),
            ]
        return mapping

    @staticmethod
    def _same_names(*names: str) -> List[WeightTarget]:
        return [WeightTarget(to_pattern=name, from_pattern=[name]) for name in names]

    @staticmethod
    def _conv(prefix: str) -> List[WeightTarget]:
        return [
            WeightTarget(
                to_pattern=f"{prefix}.weight",
                from_pattern=[f"{prefix}.weight"],
                transform=WeightTransforms.transpose_conv2d_weight,
            ),
            WeightTarget(to_pattern=f"{prefix}.bias", from_pattern=[f"{prefix}.bias"]),
        ]
