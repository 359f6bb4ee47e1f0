from mklein.models.common.tokenizer.tokenizer import BaseTokenizer, LanguageTokenizer, Tokenizer
from mklein.models.common.tokenizer.tokenizer_loader import TokenizerLoader
from mklein.models.common.tokenizer.tokenizer_output import TokenizerOutput

__all__ = ["BaseTokenizer", "LanguageTokenizer", "Tokenizer", "TokenizerLoader", "TokenizerOutput"]
