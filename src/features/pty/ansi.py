"""Terminal control sequence stripping."""

import re


# OSC: ESC ] ... terminated by BEL or ST (ESC \)
_OSC_PATTERN = r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
# CSI: ESC [ params intermediates final
_CSI_PATTERN = r"\x1b\[[0-?]*[ -/]*[@-~]"
# Two-byte escapes: charset selection, keypad modes, save/restore cursor
_SIMPLE_ESCAPE_PATTERN = r"\x1b[()][A-Za-z0-9]|\x1b[@-Z\\^_=>78]"
# 8-bit CSI and stray control bytes other than tab, newline, carriage return
_CONTROL_PATTERN = r"\x9b[0-?]*[ -/]*[@-~]|[\x00-\x08\x0b\x0c\x0e-\x1a\x1c-\x1f\x7f]"

ANSI_ESCAPE_RE = re.compile(
    "|".join(
        (_OSC_PATTERN, _CSI_PATTERN, _SIMPLE_ESCAPE_PATTERN, _CONTROL_PATTERN)
    )
)


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences and control bytes from text.

    Handles CSI sequences (colors, cursor movement), OSC sequences (window
    titles, hyperlinks), and simple two-byte escapes. Tabs, newlines, and
    carriage returns are kept.

    Args:
        text: Raw terminal text.

    Returns:
        Text with control sequences removed.
    """
    return ANSI_ESCAPE_RE.sub("", text)


def decode_terminal_output(raw: bytes) -> str:
    """Decode raw terminal bytes and strip control sequences.

    Invalid UTF-8 (e.g. a multi-byte character split across reads) is
    replaced rather than rejected.

    Args:
        raw: Raw bytes read from the pseudo-terminal.

    Returns:
        Clean text view.
    """
    return strip_ansi(raw.decode("utf-8", errors="replace"))
