"""tqdm rendering of the progress tracker's counters."""

from __future__ import annotations

from tqdm import tqdm

from chatsdk_migrator.core.progress import ProgressObserver


class TqdmProgressObserver(ProgressObserver):
    """One open-ended tqdm bar per entity kind."""

    def __init__(self, disable: bool = False) -> None:
        self.disable = disable
        self.bars: dict[str, tqdm] = {}

    def on_counter_created(self, name: str, label: str) -> None:
        if name in self.bars:
            return
        self.bars[name] = tqdm(
            desc=label,
            unit=" rows",
            position=len(self.bars),
            leave=True,
            disable=self.disable,
        )

    def on_batch_imported(self, kind: str, count: int) -> None:
        bar = self.bars.get(kind)
        if bar is not None:
            bar.update(count)

    def on_stop(self) -> None:
        for bar in self.bars.values():
            bar.close()
        self.bars.clear()
