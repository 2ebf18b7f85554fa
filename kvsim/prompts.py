# SPDX-License-Identifier: Apache-2.0
"""
Prompt tokenization and prefill streams.

Tokens are opaque display labels, not model token ids. Any stable splitter
works; this one splits on whitespace and emits the punctuation marks
``. , ? ! : ;`` as their own tokens. Other symbols are dropped.

Example:
    tokenize_prompt("Hello, how are you?")
    # ['Hello', ',', 'how', 'are', 'you', '?']
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

PUNCTUATION_TOKENS = frozenset({".", ",", "?", "!", ":", ";"})

_WORD_CHAR_RE = re.compile(r"[A-Za-z0-9']")


@dataclass(frozen=True)
class StreamToken:
    """
    One token of the flattened prefill stream.

    Attributes:
        owner_id: Sequence the token belongs to
        token: Token label
        position: Index of the token inside its own sequence
    """

    owner_id: int
    token: str
    position: int


def tokenize_prompt(prompt: str) -> List[str]:
    """Split a prompt into word and punctuation tokens."""
    tokens = []
    word = []

    for char in prompt:
        if _WORD_CHAR_RE.match(char):
            word.append(char)
        elif char in PUNCTUATION_TOKENS:
            if word:
                tokens.append("".join(word))
                word = []
            tokens.append(char)
        elif char.isspace():
            if word:
                tokens.append("".join(word))
                word = []

    if word:
        tokens.append("".join(word))

    return tokens


def tokenize_prompts(prompts: Iterable[str]) -> Tuple[Tuple[str, ...], ...]:
    """Tokenize each prompt, one tuple of labels per sequence."""
    return tuple(tuple(tokenize_prompt(p)) for p in prompts)


def flatten_prefill_stream(
    prompt_tokens: Sequence[Sequence[str]],
) -> Tuple[StreamToken, ...]:
    """
    Flatten per-sequence tokens into one prefill stream.

    Sequences are laid out back to back (all of sequence 0, then sequence 1,
    ...), so prefill processes one sequence's prompt before the next one.
    """
    stream = []
    for owner_id, tokens in enumerate(prompt_tokens):
        for position, token in enumerate(tokens):
            stream.append(StreamToken(owner_id=owner_id, token=token, position=position))
    return tuple(stream)


def is_punctuation_token(token: str) -> bool:
    return token in PUNCTUATION_TOKENS


def render_tokens(tokens: Sequence[str]) -> str:
    """
    Join tokens back into readable text.

    Word tokens are separated by a space; punctuation attaches directly to
    the previous token.
    """
    if not tokens:
        return ""

    parts = [tokens[0]]
    for token in tokens[1:]:
        if is_punctuation_token(token):
            parts.append(token)
        else:
            parts.append(" " + token)
    return "".join(parts)
