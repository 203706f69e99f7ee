# finguard/utils/moderation.py
import re

CONTROL_RE = re.compile(r"[\x00-\x1F\x7F]")
HTML_TAG_RE = re.compile(r"<[^>]*>")

MAX_INPUT_LEN = 500


def normalize_text(text: str | None) -> str:
    return (text or "").strip().lower()


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    sign = "-" if n < 0 else ""
    n = abs(n)
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return sign + "".join(reversed(out))


def text_fingerprint(text: str | None) -> str:
    """
    31-multiplier string hash over the normalized text, wrapped to a
    signed 32-bit int and rendered in base 36.

    Not cryptographic: two different texts can share a fingerprint,
    which the spam detector then counts as repeats.
    """
    h = 0
    for ch in normalize_text(text):
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return _base36(h)


def sanitize_input(text) -> str:
    if not text or not isinstance(text, str):
        return ""
    t = text.strip()[:MAX_INPUT_LEN]
    t = CONTROL_RE.sub("", t)
    t = HTML_TAG_RE.sub("", t)
    return t
