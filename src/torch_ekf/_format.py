"""Readable representations of models and noises."""

from __future__ import annotations

import contextlib
import itertools

import torch

_SPLIT_LENGTH = 110


if hasattr(torch._tensor_str, "printoptions"):  # noqa: SLF001
    printoptions = torch._tensor_str.printoptions  # noqa: SLF001
else:

    @contextlib.contextmanager
    def printoptions(**kwargs):
        """Change pytorch printoptions temporarily."""
        old = torch._tensor_str.PRINT_OPTS  # noqa: SLF001
        saved = {
            "precision": old.precision,
            "threshold": old.threshold,
            "edgeitems": old.edgeitems,
            "linewidth": old.linewidth,
            "sci_mode": old.sci_mode,
        }
        torch.set_printoptions(**kwargs)
        try:
            yield
        finally:
            torch.set_printoptions(**saved)


def _lines(value, linewidth: int) -> list[str]:
    if isinstance(value, torch.Tensor):
        with printoptions(profile="short", sci_mode=False, linewidth=linewidth):
            return str(value).split("\n")
    return repr(value).split("\n")


def side_by_side(title: str, left_name: str, left, right_name: str, right, linewidth=80) -> str:
    """Format two named values (matrices or models) on a single block of lines.

    When both values fit within ``_SPLIT_LENGTH`` characters, they are printed side by side::

        Motion: A = tensor([[1., 1.],   &  Q = tensor([[0.01, 0.00],
                           [0., 1.]])               [0.00, 0.01]])

    Otherwise, the second value is printed below the first one.
    """
    left_lines = _lines(left, linewidth)
    right_lines = _lines(right, linewidth)

    prefix = f"{title}: {left_name} = "
    indent = " " * len(prefix)

    max_left = max(len(line) for line in left_lines)
    max_right = max(len(line) for line in right_lines)

    if max_left + max_right <= _SPLIT_LENGTH:  # Single block
        left_lines = [line.ljust(max_left) for line in left_lines]
        separator = f"  &  {right_name} = "
        rows = []
        for i, (left_line, right_line) in enumerate(
            itertools.zip_longest(left_lines, right_lines, fillvalue=None)
        ):
            rows.append(
                (prefix if i == 0 else indent)
                + (left_line if left_line is not None else " " * max_left)
                + (separator if i == 0 else " " * len(separator))
                + (right_line if right_line is not None else "")
            )
        return "\n".join(row.rstrip() for row in rows)

    # Two blocks
    right_prefix = " " * (len(prefix) - len(f"{right_name} = ")) + f"{right_name} = "
    rows = [(prefix if i == 0 else indent) + line for i, line in enumerate(left_lines)]
    rows.append("")
    rows.extend((right_prefix if i == 0 else indent) + line for i, line in enumerate(right_lines))
    return "\n".join(rows)


def framed(header: str, *blocks: str) -> str:
    """Join a header and blocks with horizontal rules as wide as the widest line."""
    n_char = max(len(line) for line in "\n".join((header, *blocks)).split("\n"))
    return ("\n" + "-" * n_char + "\n").join([header, *blocks])


def labeled(title: str, name: str, value, linewidth=80) -> str:
    """Format a single named value, aligned like :func:`side_by_side`."""
    prefix = f"{title}: {name} = "
    lines = _lines(value, linewidth)
    return "\n".join((prefix if i == 0 else " " * len(prefix)) + line for i, line in enumerate(lines))
