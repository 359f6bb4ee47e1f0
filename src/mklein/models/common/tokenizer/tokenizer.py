from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

import mlx.core as mx
from transformers import PreTrainedTokenizerBase

from mklein.models.common.tokenizer.tokenizer_output import TokenizerOutput
from mklein.utils.exceptions import TokenizationError


@runtime_checkable
class Tokenizer(Protocol):
    max_length: int

    def tokenize(self, prompt: str | list[str], max_length: int | None = None) -> TokenizerOutput: ...


class BaseTokenizer(ABC):
    def __init__(self, tokenizer: PreTrainedTokenizerBase, max_length: int = 512):
        self.tokenizer = tokenizer
        self.max_length = max_length

    @abstractmethod
    def tokenize(self, prompt: str | list[str], max_length: int | None = None) -> TokenizerOutput: ...


class LanguageTokenizer(BaseTokenizer):
    def __init__(
        self,
        tokenizer: PreTrainedTokenizerBase,
        max_length: int = 512,
        padding: str = "max_length",
        use_chat_template: bool = False,
        chat_template_kwargs: dict | None = None,
        add_special_tokens: bool = True,
    ):
        super().__init__(tokenizer, max_length)
        self.padding = padding
        self.use_chat_template = use_chat_template
        self.chat_template_kwargs = chat_template_kwargs or {}
        self.add_special_tokens = add_special_tokens

    def tokenize(self, prompt: str | list[str], max_length: int | None = None) -> TokenizerOutput:
        max_length = max_length or self.max_length
        prompts = [prompt] if isinstance(prompt, str) else list(prompt)
        prompts = [p if p is not None else "" for p in prompts]

        try:
            if self.use_chat_template:
                prompts = [
                    self.tokenizer.apply_chat_template(
                        [{"role": "user", "content": p}],
                        tokenize=False,
                        add_generation_prompt=True,
                        **self.chat_template_kwargs,
                    )
                    for p in prompts
                ]

            tokens = self.tokenizer(
                prompts,
                padding=self.padding,
                max_length=max_length,
                truncation=True,
                add_special_tokens=self.add_special_tokens,
                return_tensors="np",
            )
        except (ValueError, TypeError, KeyError) as e:
            raise TokenizationError(f"Could not tokenize prompt: {e}") from e

        return TokenizerOutput(
            input_ids=mx.array(tokens["input_ids"]),
            attention_mask=mx.array(tokens["attention_mask"]),
        )
