# tradeledger/encoding.py
"""
Encoding recovery for broker exports.

Exports are usually Shift_JIS (cp932) but arrive re-saved as UTF-8 often
enough that a fixed encoding is not safe. Decoding "successfully" is not
enough either: a wrong codec can produce mojibake without raising. A decode
is accepted only when the text looks like a real export, i.e. it contains
Japanese script and at least one of the domain terms expected in a header.
"""

import logging
import re
from typing import Iterable, Optional, Sequence, Tuple, Union

from .errors import EncodingRecoveryError

logger = logging.getLogger(__name__)

DEFAULT_ENCODINGS = ("cp932", "utf-8-sig", "latin-1")

EXPECTED_TOKENS = ("約定", "銘柄", "受渡", "売買", "取引", "ファンド")

_JAPANESE_SCRIPT = re.compile("[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9faf]")


def looks_plausible(text: str, tokens: Iterable[str] = EXPECTED_TOKENS) -> bool:
    """True when the text has Japanese script and at least one expected token."""
    if not text or not _JAPANESE_SCRIPT.search(text):
        return False
    found = [t for t in tokens if t in text]
    logger.debug("expected tokens found: %s", found)
    return len(found) > 0


def decode_export(raw: Union[bytes, str],
                  encodings: Optional[Sequence[str]] = None,
                  tokens: Iterable[str] = EXPECTED_TOKENS) -> Tuple[str, str]:
    """
    Decode raw export bytes with the first plausible encoding.

    Args:
        raw: File content. Text that is already decoded is only checked.
        encodings: Candidate encodings, tried in order.
        tokens: Domain terms, at least one of which must appear.

    Returns:
        (text, encoding_used). encoding_used is "str" for pre-decoded input.

    Raises:
        EncodingRecoveryError: no candidate produced plausible text.
    """
    tokens = tuple(tokens)
    if isinstance(raw, str):
        if looks_plausible(raw, tokens):
            return raw.lstrip("\ufeff"), "str"
        raise EncodingRecoveryError("text does not look like a broker export (no expected terms found)",
                                    attempted=["str"])

    candidates = list(encodings or DEFAULT_ENCODINGS)
    for encoding in candidates:
        try:
            text = raw.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            logger.debug("decode with %s failed: %s", encoding, e)
            continue
        if looks_plausible(text, tokens):
            logger.info("decoded export with %s", encoding)
            return text.lstrip("\ufeff"), encoding
        logger.debug("decode with %s produced implausible text", encoding)

    raise EncodingRecoveryError(
        f"could not decode export with any of {', '.join(candidates)}",
        attempted=candidates,
    )
