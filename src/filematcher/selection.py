import logging

logger = logging.getLogger(__name__)


class SelectionState:
    """
    Snapshot of match results the user can adjust.

    `select` and `clear` never modify a snapshot, they return a new one
    that remembers where it came from. The matcher's own decision is kept
    as `initial` so edits can be told apart from auto matches.
    """

    def __init__(self, results, initial=None, previous=None, generation=0):
        self.results = tuple(results)
        self.initial = self.results if initial is None else initial
        self.previous = previous
        self.generation = generation

    @classmethod
    def from_summary(cls, summary):
        return cls(summary.results)

    def __len__(self):
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    def __getitem__(self, key):
        return self.results[key]

    def _replace_result(self, result_index, result):
        if not 0 <= result_index < len(self.results):
            raise IndexError(f"No match result with index {result_index}")
        results = list(self.results)
        results[result_index] = result
        return self.__class__(
            results,
            initial=self.initial,
            previous=self,
            generation=self.generation + 1,
        )

    def select(self, result_index, disk_file):
        """Pick `disk_file` for a result, it does not have to be a candidate."""
        result = self.results[result_index]
        if disk_file not in result.candidates:
            logger.debug(
                f"Selecting {disk_file.path!r} for {result.manifest_entry.name!r} outside its candidates"
            )
        return self._replace_result(
            result_index, result._replace(selected=disk_file, auto_matched=False)
        )

    def clear(self, result_index):
        result = self.results[result_index]
        return self._replace_result(
            result_index, result._replace(selected=None, auto_matched=False)
        )

    def auto_select_first(self):
        """Resolve every ambiguous result with its first candidate."""
        state = self
        for i, result in enumerate(self.results):
            if result.is_ambiguous:
                state = state.select(i, result.candidates[0])
        return state

    @property
    def history(self):
        snapshots = []
        state = self.previous
        while state is not None:
            snapshots.append(state)
            state = state.previous
        return snapshots[::-1]

    def is_dirty(self, result_index):
        result = self.results[result_index]
        initial = self.initial[result_index]
        return result.selected != initial.selected

    def dirty_indices(self):
        return [i for i in range(len(self.results)) if self.is_dirty(i)]

    def selected(self):
        return [r for r in self.results if r.is_matched]

    def ambiguous(self):
        return [r for r in self.results if r.is_ambiguous]

    def unmatched(self):
        return [r for r in self.results if r.is_unmatched]

    def unmatched_indices(self):
        """Manifest indices of every result without a selected file."""
        return [r.manifest_entry.index for r in self.results if not r.is_matched]
