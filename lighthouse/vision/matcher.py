"""
Matching store: the catalog of known descriptions and nearest-neighbour search.

Similarity between two descriptions combines Lowe's ratio test over Hamming
distances of ORB descriptors with the Pearson correlation of their colour
histograms:

    score = w * good_matches / max(len(query), len(candidate))
          + (1 - w) * max(0, histogram_correlation)

Each catalog entry is scored independently on a thread pool; results are
returned best first, ties kept in insertion order.

Usage:
    from lighthouse.vision.matcher import MatchingStore

    store = MatchingStore(extractor=OrbExtractor())
    store.load_catalog(data_dir)
    matches = store.find_matches(store.describe(frame))
    score, best = matches[0]
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import NamedTuple

import numpy as np

from lighthouse.config import MatchingSettings
from lighthouse.vision import storage
from lighthouse.vision.description import Description
from lighthouse.vision.errors import CorruptRecordError, NotFoundError
from lighthouse.vision.extractor import Extractor, OrbExtractor

logger = logging.getLogger(__name__)

# Number of set bits for every byte value.
_POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)

Scorer = Callable[[Description, Description], float]


class Match(NamedTuple):
    score: float
    description: Description


def hamming_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise Hamming distances between two binary descriptor matrices."""
    xor = np.bitwise_xor(a[:, None, :], b[None, :, :])
    return _POPCOUNT[xor].sum(axis=2, dtype=np.int32)


def ratio_test_score(query: np.ndarray, candidate: np.ndarray, ratio: float) -> float:
    """Share of one-to-one descriptor matches that pass Lowe's ratio test.

    A query descriptor counts only if its nearest candidate descriptor also
    has it as nearest (cross-check), so each candidate descriptor is used at
    most once. The count is divided by the larger descriptor set: a small
    candidate cannot outscore an identical one.
    """
    if len(query) == 0 or len(candidate) < 2 or query.shape[1] != candidate.shape[1]:
        return 0.0
    distances = hamming_distances(query, candidate)
    nearest = np.partition(distances, 1, axis=1)[:, :2]
    passes = nearest[:, 0] < ratio * nearest[:, 1]
    best = np.argmin(distances, axis=1)
    mutual = np.argmin(distances, axis=0)[best] == np.arange(len(query))
    good = int(np.count_nonzero(passes & mutual))
    return min(1.0, good / max(len(query), len(candidate)))


def histogram_correlation(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation of two histograms (OpenCV HISTCMP_CORREL)."""
    if a.shape != b.shape:
        return 0.0
    da = a.astype(np.float64) - a.mean()
    db = b.astype(np.float64) - b.mean()
    denom = float(np.sqrt((da * da).sum() * (db * db).sum()))
    if denom == 0.0:
        return 0.0
    return float((da * db).sum() / denom)


def similarity(query: Description, candidate: Description, settings: MatchingSettings) -> float:
    """Similarity in [0, 1] between a query and a catalog entry."""
    features = ratio_test_score(query.descriptors, candidate.descriptors, settings.ratio)
    colour = max(0.0, histogram_correlation(query.histogram, candidate.histogram))
    w = settings.feature_weight
    return w * features + (1.0 - w) * colour


class MatchingStore:
    """In-memory catalog of descriptions with ranked similarity search.

    The catalog is only mutated by the task executor's worker thread. The
    lock makes reads from other threads (HTTP endpoint, CLI) see either the
    old or the new catalog, never a torn one.
    """

    def __init__(
        self,
        settings: MatchingSettings | None = None,
        extractor: Extractor | None = None,
        scorer: Scorer | None = None,
    ):
        self.settings = settings or MatchingSettings()
        self.extractor = extractor or OrbExtractor(self.settings)
        self._scorer = scorer or (lambda q, c: similarity(q, c, self.settings))
        self._catalog: dict[str, Description] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._catalog)

    def __contains__(self, description_id: object) -> bool:
        return description_id in self._catalog

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._catalog)

    def describe(self, frame: np.ndarray) -> Description:
        """Describe a frame; ``QualityError`` propagates."""
        return self.extractor.describe(frame)

    def insert(self, description: Description) -> None:
        """Add a description. An existing id is overwritten (last write wins)."""
        with self._lock:
            replaced = description.id in self._catalog
            self._catalog[description.id] = description
        if replaced:
            logger.info("Replaced description %s in catalog", description.id)

    def get(self, description_id: str) -> Description:
        with self._lock:
            try:
                return self._catalog[description_id]
            except KeyError:
                raise NotFoundError(description_id) from None

    def find_matches(self, description: Description) -> list[Match]:
        """Score every catalog entry against ``description``, best first."""
        with self._lock:
            candidates = list(self._catalog.values())
        if not candidates:
            return []

        workers = min(self.settings.match_workers, len(candidates))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                scores = list(pool.map(lambda c: self._scorer(description, c), candidates))
        else:
            scores = [self._scorer(description, c) for c in candidates]

        matches = [
            Match(float(score), candidate)
            for score, candidate in zip(scores, candidates)
            if score >= self.settings.min_score
        ]
        # sorted() is stable, so equal scores keep catalog order.
        return sorted(matches, key=lambda m: -m.score)

    def find_matches_in_frame(self, frame: np.ndarray) -> list[Match]:
        return self.find_matches(self.describe(frame))

    def load_catalog(self, root: str | Path) -> int:
        """Load every identity folder under ``root`` into the catalog.

        Unreadable entries are logged and skipped. Returns the number of
        descriptions actually loaded.
        """
        loaded = 0
        for folder in storage.list_folders(root):
            try:
                description = storage.load(folder)
            except CorruptRecordError as e:
                logger.warning("Couldn't deserialize description at %s (%s). Skipping...",
                               folder, e.reason)
                continue
            if description.id != folder.name:
                logger.warning("Description id %s does not match folder %s. Skipping...",
                               description.id, folder)
                continue
            self.insert(description)
            loaded += 1

        logger.info("Loaded %d image description(s) from %s", loaded, root)
        return loaded
