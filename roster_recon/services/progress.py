from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Write progress display with tqdm (TTY only).

In non-TTY environments (CI, log capture) the bar is disabled entirely to avoid ANSI
control sequence spam; logging continues as usual.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over the applier's roster writes.

    advance() is called from applier worker threads; tqdm serializes updates internally.
    """

    def __init__(self, total: int, *, description: str = "Applying updates") -> None:
        self.total = total
        self.description = description
        self.done = 0

        self.enabled = is_tty_enabled() and total > 0
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit="record",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self) -> None:
        self.done += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
