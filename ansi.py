# ansi.py
"""
Escape-sequence aware text transforms for the status line.

Every transform here is driven by the same small scanner, `iter_segments`,
so the stripping passes and the truncation pass always agree on where an
escape sequence starts and ends.
"""
from typing import Iterator, List, Optional, Tuple

import wcwidth

ESC = '\x1b'
BEL = '\x07'
BACKSPACE = '\x08'
ELLIPSIS = '…'

# Scanner states
NORMAL = "normal"
IN_ESCAPE = "escape"        # saw ESC, waiting for the sequence type
IN_CSI = "csi"              # ESC [ params... final
IN_OSC = "osc"              # ESC ] ... BEL | ESC \
IN_CHARSET = "charset"      # ESC ( B and friends, one more character

# CSI finals that move the cursor sideways, save/restore it, or erase
# parts of the line. Any of these would drag the cursor off the status line.
LINE_EDITING_FINALS = frozenset("KGCDsu")
# DEC save/restore cursor (ESC 7 / ESC 8)
LINE_EDITING_SHORT = frozenset("78")


def char_width(ch: str) -> int:
    """Terminal columns taken by one character: 2 for wide, 0 for combining and control."""
    return max(wcwidth.wcwidth(ch), 0)


def display_width(text: str) -> int:
    """Columns taken by `text`, which must already be free of escape sequences."""
    return sum(char_width(ch) for ch in text)


def _is_csi_final(ch: str) -> bool:
    return '@' <= ch <= '~'


def iter_segments(text: str) -> Iterator[Tuple[bool, str]]:
    """
    Split `text` into `(is_escape, chunk)` pieces, in order.

    Escape chunks are complete sequences (or the unterminated tail of one at
    the end of the input). Joining every chunk gives back `text` unchanged.
    """
    state = NORMAL
    buf: List[str] = []

    for ch in text:
        if state == NORMAL:
            if ch == ESC:
                if buf:
                    yield False, ''.join(buf)
                buf = [ch]
                state = IN_ESCAPE
            else:
                buf.append(ch)
            continue

        buf.append(ch)
        if state == IN_ESCAPE:
            if ch == '[':
                state = IN_CSI
            elif ch == ']':
                state = IN_OSC
            elif ch in '()*+#%':
                state = IN_CHARSET
            elif ch.isalnum() or ch in '=<>\\':
                # Two-character escape: ESC 7, ESC M, ESC =, ...
                yield True, ''.join(buf)
                buf, state = [], NORMAL
        elif state == IN_CSI:
            if _is_csi_final(ch):
                yield True, ''.join(buf)
                buf, state = [], NORMAL
        elif state == IN_OSC:
            if ch == BEL or (ch == '\\' and buf[-2] == ESC):
                yield True, ''.join(buf)
                buf, state = [], NORMAL
        elif state == IN_CHARSET:
            yield True, ''.join(buf)
            buf, state = [], NORMAL

    if buf:
        yield state != NORMAL, ''.join(buf)


def _is_line_editing(sequence: str) -> bool:
    if len(sequence) == 2:
        return sequence[1] in LINE_EDITING_SHORT
    if sequence.startswith(ESC + '[') and len(sequence) > 2:
        final = sequence[-1]
        if final not in LINE_EDITING_FINALS:
            return False
        params = sequence[2:-1]
        if final in 'su':
            return params == ''
        return params.isdigit() or params == ''
    return False


def make_render_safe(line: str) -> str:
    """
    Remove everything that would move or erase around the cursor: carriage
    returns, backspaces, line clears, horizontal cursor moves and cursor
    save/restore. Color and style sequences are kept.
    """
    out = []
    for is_escape, chunk in iter_segments(line):
        if is_escape:
            if not _is_line_editing(chunk):
                out.append(chunk)
        else:
            out.append(chunk.replace('\r', '').replace(BACKSPACE, ''))
    return ''.join(out)


def make_measurable(line: str) -> str:
    """
    Visible text only, for width accounting. All escape sequences, bells
    and ellipsis glyphs are removed. Never display the result.
    """
    return ''.join(
        chunk.replace(BEL, '').replace(ELLIPSIS, '')
        for is_escape, chunk in iter_segments(line)
        if not is_escape
    )


def truncate_with_ansi(line: str, max_visible: int) -> str:
    """
    Shorten `line` to at most `max_visible` terminal columns.

    Escape sequences are copied whole and do not count against the budget.
    When the next character does not fit, the last visible character written
    is replaced by an ellipsis and the rest of the input is dropped.

    Args:
        line: A render-safe line.
        max_visible: Column budget. Negative values act as 0.

    Returns:
        The (possibly) truncated line.
    """
    max_visible = max(max_visible, 0)
    pieces: List[str] = []
    visible = 0
    last_visible: Optional[int] = None

    for is_escape, chunk in iter_segments(line):
        if is_escape:
            pieces.append(chunk)
            continue
        for ch in chunk:
            width = char_width(ch)
            if visible + width <= max_visible:
                if width:
                    last_visible = len(pieces)
                pieces.append(ch)
                visible += width
                continue
            # Budget exhausted: the ellipsis takes the last visible slot.
            if last_visible is None:
                pieces.append(ELLIPSIS)
            else:
                # Combining marks riding on that character go with it; escapes stay.
                tail = [p for p in pieces[last_visible + 1:] if p.startswith(ESC)]
                pieces[last_visible:] = [ELLIPSIS] + tail
            return ''.join(pieces)

    return ''.join(pieces)
