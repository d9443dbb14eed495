"""
Rule table storage and its periodic refresh.

The MappingStore holds the current rule table behind a single lock. The
Refresher re-reads the mapping source on a fixed interval, builds a new
table and swaps it in. A failed read keeps the previous table in service.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .errors import RuleSyntaxError, SourceUnavailableError
from .rules import NatRule, is_ignorable, parse_rule_line

DEFAULT_REFRESH_INTERVAL = 5.0


# ---------------------------------------------------------------------------
# Mapping store
# ---------------------------------------------------------------------------

class MappingStore:
    """Ordered rule table shared by the refresher and the resolver."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rules: Tuple[NatRule, ...] = ()
        self.last_loaded: Optional[datetime] = None
        self.load_count = 0

    def replace(self, rules: List[NatRule]):
        """Swap in a complete new table."""
        table = tuple(rules)
        with self._lock:
            self._rules = table
            self.last_loaded = datetime.now()
            self.load_count += 1

    @contextmanager
    def reading(self) -> Iterator[Tuple[NatRule, ...]]:
        """
        Hold the store lock for the duration of a scan.

        Readers keep the lock until the ``with`` block ends, so a refresh
        waits for every in-progress scan and no scan sees a half-built table.
        """
        with self._lock:
            yield self._rules

    @property
    def rules(self) -> Tuple[NatRule, ...]:
        with self._lock:
            return self._rules

    def __len__(self):
        with self._lock:
            return len(self._rules)


# ---------------------------------------------------------------------------
# Refresher
# ---------------------------------------------------------------------------

class Refresher:
    """Reloads a MappingStore from the mapping source."""

    def __init__(
        self,
        store: MappingStore,
        source_path: Union[str, Path],
        interval: float = DEFAULT_REFRESH_INTERVAL
    ):
        """
        Initialize the refresher.

        Args:
            store: Store to populate.
            source_path: Path of the mapping source (usually a /proc file).
            interval: Seconds between two refresh passes.
        """
        self.store = store
        self.source_path = Path(source_path)
        self.interval = interval
        self.logger = logging.getLogger(__name__)
        self._source_failing = False
        self._last_count: Optional[int] = None

    def read_rules(self) -> List[NatRule]:
        """
        Read and parse the mapping source.

        Returns:
            Rules in file order.

        Raises:
            SourceUnavailableError: if the source cannot be opened or read.
        """
        try:
            with open(self.source_path, 'r', encoding='utf-8') as f:
                lines = f.readlines()
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnavailableError(self.source_path, e) from e

        rules: List[NatRule] = []
        for line_number, line in enumerate(lines, start=1):
            line = line.rstrip('\r\n')
            if is_ignorable(line):
                continue
            try:
                rules.append(parse_rule_line(line))
            except RuleSyntaxError as e:
                self.logger.warning(
                    f"Skipping {self.source_path} line {line_number}: {e.reason}: {line!r}"
                )
        return rules

    def refresh(self) -> int:
        """
        Run one refresh pass.

        Returns:
            Number of rules now in the store.

        Raises:
            SourceUnavailableError: if the source is unreadable. The store
                keeps its previous table.
        """
        try:
            rules = self.read_rules()
        except SourceUnavailableError as e:
            if not self._source_failing:
                self.logger.warning(f"{e}; keeping {len(self.store)} previously loaded mappings")
                self._source_failing = True
            raise

        if self._source_failing:
            self.logger.info(f"Successfully reopened {self.source_path}")
            self._source_failing = False

        self.store.replace(rules)

        if len(rules) != self._last_count:
            self.logger.info(f"Loaded {len(rules)} NAT mappings")
            self._last_count = len(rules)
        else:
            self.logger.debug(f"Reloaded {len(rules)} NAT mappings")

        return len(rules)

    def run(self, stop_event: threading.Event):
        """Refresh every ``interval`` seconds until ``stop_event`` is set."""
        self.logger.debug(f"Refreshing {self.source_path} every {self.interval}s")
        while not stop_event.wait(self.interval):
            try:
                self.refresh()
            except SourceUnavailableError:
                continue

    def start(self, stop_event: threading.Event) -> threading.Thread:
        """Start ``run`` on a background daemon thread."""
        thread = threading.Thread(
            target=self.run,
            args=(stop_event,),
            name="slnat-refresher",
            daemon=True
        )
        thread.start()
        return thread
