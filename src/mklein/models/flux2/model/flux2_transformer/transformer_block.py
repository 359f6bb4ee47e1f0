import mlx.core as mx
from mlx import nn

from mklein.models.flux2.model.flux2_transformer.attention import Flux2Attention
from mklein.models.flux2.model.flux2_transformer.feed_forward import Flux2FeedForward
from mklein.models.flux2.model.flux2_transformer.modulation import ModulationParams


class Flux2TransformerBlock(nn.Module):
    def __init__(self, dim: int, num_attention_heads: int, attention_head_dim: int, mlp_ratio: float = 3.0, eps: float = 1e-6):
        super().__init__()
        self.norm1 = nn.LayerNorm(dim, eps=eps, affine=False)
        self.norm1_context = nn.LayerNorm(dim, eps=eps, affine=False)
        self.attn = Flux2Attention(
            dim=dim,
            heads=num_attention_heads,
            dim_head=attention_head_dim,
            added_kv_proj_dim=dim,
        )
        self.norm2 = nn.LayerNorm(dim, eps=eps, affine=False)
        self.ff = Flux2FeedForward(dim=dim, mult=mlp_ratio)
        self.norm2_context = nn.LayerNorm(dim, eps=eps, affine=False)
        self.ff_context = Flux2FeedForward(dim=dim, mult=mlp_ratio)

    def __call__(
        self,
        hidden_states: mx.array,
        encoder_hidden_states: mx.array,
        temb_mod_params_img: tuple[ModulationParams, ModulationParams],
        temb_mod_params_txt: tuple[ModulationParams, ModulationParams],
        image_rotary_emb: tuple[mx.array, mx.array],
    ) -> tuple[mx.array, mx.array]:
        (shift_msa, scale_msa, gate_msa), (shift_mlp, scale_mlp, gate_mlp) = temb_mod_params_img
        (c_shift_msa, c_scale_msa, c_gate_msa), (c_shift_mlp, c_scale_mlp, c_gate_mlp) = temb_mod_params_txt

        norm_hidden_states = (1 + scale_msa) * self.norm1(hidden_states) + shift_msa
        norm_encoder_hidden_states = (1 + c_scale_msa) * self.norm1_context(encoder_hidden_states) + c_shift_msa

        attn_output, encoder_attn_output = self.attn(
            hidden_states=norm_hidden_states,
            encoder_hidden_states=norm_encoder_hidden_states,
            image_rotary_emb=image_rotary_emb,
        )
        hidden_states = hidden_states + gate_msa * attn_output
        encoder_hidden_states = encoder_hidden_states + c_gate_msa * encoder_attn_output

        norm_hidden_states = (1 + scale_mlp) * self.norm2(hidden_states) + shift_mlp
        hidden_states = hidden_states + gate_mlp * self.ff(norm_hidden_states)

        norm_encoder_hidden_states = (1 + c_scale_mlp) * self.norm2_context(encoder_hidden_states) + c_shift_mlp
        encoder_hidden_states = encoder_hidden_states + c_gate_mlp * self.ff_context(norm_encoder_hidden_states)

        return encoder_hidden_states, hidden_states
