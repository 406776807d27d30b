"""Progress bar classes for tracking progress of chains."""

import abc
import sys
from timeit import default_timer as timer


def _format_time(total_seconds):
    """Format a time interval in seconds as a colon-delimited string [h:]m:s"""
    total_mins, seconds = divmod(int(total_seconds), 60)
    hours, mins = divmod(total_mins, 60)
    if hours != 0:
        return f"{hours:d}:{mins:02d}:{seconds:02d}"
    else:
        return f"{mins:02d}:{seconds:02d}"


def _update_stats_running_means(iter, means, new_vals):
    """Update dictionary of running statistics means with latest values."""
    if iter == 1:
        means.update({key: float(val) for key, val in new_vals.items()})
    else:
        for key, val in new_vals.items():
            means[key] += (float(val) - means[key]) / iter


class BaseProgressBar(abc.ABC):
    """Base class defining expected interface for progress bars."""

    def __init__(self, sequence, description=None):
        """
        Args:
            sequence (Sequence): Sequence to iterate over. Must be iterable AND
                have a defined length such that `len(sequence)` is valid.
            description (None or str): Description of task to prefix progress
                bar with.
        """
        self._sequence = sequence
        self._description = description
        self._active = False
        self._n_iter = len(sequence)

    @property
    def n_iter(self):
        return self._n_iter

    def __iter__(self):
        for i, val in enumerate(self._sequence):
            iter_dict = {}
            yield val, iter_dict
            self.update(i + 1, iter_dict)

    def __len__(self):
        return self._n_iter

    @abc.abstractmethod
    def update(self, iter_count, iter_dict):
        """Update progress bar state.

        Args:
            iter_count (int): New value for iteration counter.
            iter_dict (None or Dict[str, float]): Dictionary of iteration
                statistics key-value pairs to use to update postfix stats.
        """

    def __enter__(self):
        self._active = True
        return self

    def __exit__(self, *args):
        self._active = False
        return False


class DummyProgressBar(BaseProgressBar):
    """Placeholder progress bar which does not display progress updates."""

    def update(self, iter_count, iter_dict):
        pass


class SequenceProgressBar(BaseProgressBar):
    """Single-line text progress bar for iterating over a sequence.

    Written to a stream (by default `sys.stderr`) using a carriage return to
    overwrite the previous line, with the running means of any statistics put
    in the per-iteration dictionaries shown as a postfix.
    """

    GLYPHS = " ▏▎▍▌▋▊▉█"
    """Characters used to create string representation of progress bar."""

    def __init__(
        self, sequence, description=None, file=None, n_col=10, min_refresh_time=0.25
    ):
        """
        Args:
            sequence (Sequence): Sequence to iterate over. Must be iterable AND
                have a defined length such that `len(sequence)` is valid.
            description (None or str): Description of task to prefix progress
                bar with.
            file (None or File): Stream to write progress bar to. Defaults to
                `sys.stderr` if `None`.
            n_col (int): Number of columns (characters) to use in string
                representation of progress bar.
            min_refresh_time (float): Minimum time in seconds between each
                refresh of progress bar visual representation.
        """
        super().__init__(sequence, description)
        self._file = file
        self._n_col = n_col
        self._min_refresh_time = min_refresh_time
        self._counter = 0
        self._start_time = None
        self._elapsed_time = 0
        self._last_refresh_time = -float("inf")
        self._stats_dict = {}

    @property
    def counter(self):
        """Progress iteration count."""
        return self._counter

    @property
    def prop_complete(self):
        """Proportion complete (float value in [0, 1])."""
        return self._counter / self.n_iter if self.n_iter > 0 else 1.0

    @property
    def stats(self):
        """Comma-delimited string list of statistic key=value pairs."""
        return ", ".join(f"{k}={v:#.3g}" for k, v in self._stats_dict.items())

    @property
    def progress_bar(self):
        """Progress bar string."""
        n_filled, partial = divmod(self._n_col * self.prop_complete, 1)
        n_filled = int(n_filled)
        partial_block = self.GLYPHS[int(len(self.GLYPHS) * partial)] if partial else ""
        n_empty = self._n_col - n_filled - len(partial_block)
        return f"|{self.GLYPHS[-1] * n_filled}{partial_block}{' ' * n_empty}|"

    def __str__(self):
        prefix = f"{self._description}: " if self._description else ""
        postfix = (
            f"{self._counter}/{self.n_iter} [{_format_time(self._elapsed_time)}"
            f"{', ' + self.stats if self._stats_dict else ''}]"
        )
        return f"{prefix}{int(self.prop_complete * 100):3d}%{self.progress_bar}{postfix}"

    def update(self, iter_count, iter_dict=None):
        self._counter = max(0, min(iter_count, self.n_iter))
        if iter_dict:
            _update_stats_running_means(iter_count, self._stats_dict, iter_dict)
        self._elapsed_time = timer() - self._start_time
        if (
            iter_count == self.n_iter
            or timer() - self._last_refresh_time > self._min_refresh_time
        ):
            self.refresh()

    def refresh(self):
        """Rewrite progress bar line to stream."""
        file = self._file if self._file is not None else sys.stderr
        file.write(f"\r{self}")
        file.flush()
        self._last_refresh_time = timer()

    def __enter__(self):
        super().__enter__()
        self._counter = 0
        self._start_time = timer()
        self._stats_dict = {}
        return self

    def __exit__(self, *args):
        super().__exit__()
        self.refresh()
        file = self._file if self._file is not None else sys.stderr
        file.write("\n")
        file.flush()
        return False
