import mlx.core as mx
from mlx import nn

from mklein.models.common.config.model_config import ModelConfig, TransformerConfig
from mklein.models.flux2.model.flux2_transformer.ada_layer_norm_continuous import AdaLayerNormContinuous
from mklein.models.flux2.model.flux2_transformer.block_phase import BlockPhase, SubstepHook
from mklein.models.flux2.model.flux2_transformer.modulation import Flux2Modulation
from mklein.models.flux2.model.flux2_transformer.pos_embed import Flux2PosEmbed
from mklein.models.flux2.model.flux2_transformer.single_transformer_block import Flux2SingleTransformerBlock
from mklein.models.flux2.model.flux2_transformer.timestep_guidance_embeddings import Flux2TimestepGuidanceEmbeddings
from mklein.models.flux2.model.flux2_transformer.transformer_block import Flux2TransformerBlock
from mklein.utils.exceptions import EmbeddingDimensionError


class Flux2Transformer(nn.Module):
    def __init__(
        self,
        in_channels: int = 128,
        num_layers: int = 5,
        num_single_layers: int = 20,
        attention_head_dim: int = 128,
        num_attention_heads: int = 24,
        joint_attention_dim: int = 7680,
        timestep_guidance_channels: int = 256,
        mlp_ratio: float = 3.0,
        axes_dims_rope: tuple[int, ...] = (32, 32, 32, 32),
        rope_theta: int = 2000,
        eps: float = 1e-6,
        guidance_embeds: bool = False,
    ):
        super().__init__()
        self.inner_dim = num_attention_heads * attention_head_dim
        self.joint_attention_dim = joint_attention_dim

        self.pos_embed = Flux2PosEmbed(theta=rope_theta, axes_dim=axes_dims_rope)
        self.time_guidance_embed = Flux2TimestepGuidanceEmbeddings(
            in_channels=timestep_guidance_channels,
            embedding_dim=self.inner_dim,
            guidance_embeds=guidance_embeds,
        )
        self.double_stream_modulation_img = Flux2Modulation(self.inner_dim, mod_param_sets=2)
        self.double_stream_modulation_txt = Flux2Modulation(self.inner_dim, mod_param_sets=2)
        self.single_stream_modulation = Flux2Modulation(self.inner_dim, mod_param_sets=1)

        self.x_embedder = nn.Linear(in_channels, self.inner_dim, bias=False)
        self.context_embedder = nn.Linear(joint_attention_dim, self.inner_dim, bias=False)
        self.transformer_blocks = [
            Flux2TransformerBlock(
                dim=self.inner_dim,
                num_attention_heads=num_attention_heads,
                attention_head_dim=attention_head_dim,
                mlp_ratio=mlp_ratio,
                eps=eps,
            )
            for _ in range(num_layers)
        ]
        self.single_transformer_blocks = [
            Flux2SingleTransformerBlock(
                dim=self.inner_dim,
                num_attention_heads=num_attention_heads,
                attention_head_dim=attention_head_dim,
                mlp_ratio=mlp_ratio,
                eps=eps,
            )
            for _ in range(num_single_layers)
        ]
        self.norm_out = AdaLayerNormContinuous(self.inner_dim, self.inner_dim, eps=eps)
        self.proj_out = nn.Linear(self.inner_dim, in_channels, bias=False)

    @staticmethod
    def from_config(config: TransformerConfig) -> "Flux2Transformer":
        return Flux2Transformer(
            in_channels=config.in_channels,
            num_layers=config.num_layers,
            num_single_layers=config.num_single_layers,
            attention_head_dim=config.attention_head_dim,
            num_attention_heads=config.num_attention_heads,
            joint_attention_dim=config.joint_attention_dim,
            timestep_guidance_channels=config.timestep_guidance_channels,
            mlp_ratio=config.mlp_ratio,
            axes_dims_rope=config.axes_dims_rope,
            rope_theta=config.rope_theta,
            eps=config.eps,
            guidance_embeds=config.guidance_embeds,
        )

    def __call__(
        self,
        hidden_states: mx.array,
        encoder_hidden_states: mx.array,
        timestep: mx.array,
        img_ids: mx.array,
        txt_ids: mx.array,
        guidance: mx.array | None = None,
        substep_callback: SubstepHook | None = None,
    ) -> mx.array:
        """
        Predicts the flow velocity for packed latents ``[B, S_img, C]``
        conditioned on text embeddings ``[B, S_txt, joint_attention_dim]``.

        ``timestep`` is on the training scale (0..1000). ``img_ids`` and
        ``txt_ids`` are ``[S, 4]`` rotary positions. When ``substep_callback``
        is given, each block is evaluated before it is reported.
        """
        if encoder_hidden_states.shape[-1] != self.joint_attention_dim:
            raise EmbeddingDimensionError(
                f"Text embeddings have width {encoder_hidden_states.shape[-1]}, "
                f"the transformer expects {self.joint_attention_dim}"
            )

        batch_size = hidden_states.shape[0]
        timestep = Flux2Transformer._per_sample(timestep, batch_size)
        if guidance is not None:
            guidance = Flux2Transformer._per_sample(guidance, batch_size)
        temb = self.time_guidance_embed(timestep, guidance).astype(ModelConfig.precision)

        hidden_states = self.x_embedder(hidden_states)
        encoder_hidden_states = self.context_embedder(encoder_hidden_states)
        image_rotary_emb = self.pos_embed(mx.concatenate([txt_ids, img_ids], axis=0))

        temb_mod_params_img = self.double_stream_modulation_img(temb)
        temb_mod_params_txt = self.double_stream_modulation_txt(temb)

        num_double = len(self.transformer_blocks)
        for index, block in enumerate(self.transformer_blocks):
            encoder_hidden_states, hidden_states = block(
                hidden_states=hidden_states,
                encoder_hidden_states=encoder_hidden_states,
                temb_mod_params_img=temb_mod_params_img,
                temb_mod_params_txt=temb_mod_params_txt,
                image_rotary_emb=image_rotary_emb,
            )
            Flux2Transformer._report(substep_callback, BlockPhase.DOUBLE_BLOCK, index, num_double, hidden_states, encoder_hidden_states)  # fmt: off

        txt_len = encoder_hidden_states.shape[1]
        hidden_states = mx.concatenate([encoder_hidden_states, hidden_states], axis=1)

        temb_mod_params_single = self.single_stream_modulation(temb)[0]
        num_single = len(self.single_transformer_blocks)
        for index, block in enumerate(self.single_transformer_blocks):
            hidden_states = block(
                hidden_states=hidden_states,
                temb_mod_params=temb_mod_params_single,
                image_rotary_emb=image_rotary_emb,
            )
            Flux2Transformer._report(substep_callback, BlockPhase.SINGLE_BLOCK, index, num_single, hidden_states)

        hidden_states = hidden_states[:, txt_len:, ...]
        hidden_states = self.norm_out(hidden_states, temb)
        hidden_states = self.proj_out(hidden_states)
        Flux2Transformer._report(substep_callback, BlockPhase.FINAL_LAYER, 0, 1, hidden_states)
        return hidden_states

    @staticmethod
    def _report(callback: SubstepHook | None, phase: BlockPhase, index: int, total: int, *arrays: mx.array) -> None:
        if callback is None:
            return
        mx.eval(*arrays)
        callback(phase, index, total)

    @staticmethod
    def _per_sample(value: mx.array | float, batch_size: int) -> mx.array:
        value = value if isinstance(value, mx.array) else mx.array(value)
        return mx.broadcast_to(value.astype(mx.float32).reshape(-1), (batch_size,))
