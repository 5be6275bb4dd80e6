"""
Parallel Processing Module for Batch Replay Analysis

Implements:
- Thread pool analysis of many decoded replays at once
- One shared BaselineWriter so store writes stay serialized
- Progress tracking and result aggregation
- Per-file failure reporting without aborting the batch
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from pathlib import Path

from botsight.core.config import AnalysisConfig
from botsight.infra.database import BaselineStore
from botsight.infra.writer import BaselineWriter
from botsight.pipeline.orchestrator import Decoder, ReplayAnalyzer

logger = logging.getLogger(__name__)

# Default to CPU count - 1, minimum 1
DEFAULT_WORKERS = max(1, (os.cpu_count() or 4) - 1)
MAX_WORKERS = os.cpu_count() or 8


def find_replays(directory: Path, recursive: bool = True, suffix: str = ".json") -> list[Path]:
    """Decoded replay exports in a directory, gzip-compressed copies included."""
    prefix = "**/*" if recursive else "*"
    paths = sorted(directory.glob(f"{prefix}{suffix}"))
    paths.extend(sorted(directory.glob(f"{prefix}{suffix}.gz")))
    return paths


@dataclass
class ReplayTaskResult:
    """Result of analysing a single replay within a batch."""

    replay_path: str
    success: bool
    duration_seconds: float
    game_id: str | None = None
    skipped: bool = False
    players_analyzed: int = 0
    players_flagged: int = 0
    max_suspicion_score: int = 0
    error_message: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatchAnalysisProgress:
    """Progress tracking for batch analysis."""

    total_tasks: int
    completed_tasks: int = 0
    failed_tasks: int = 0
    current_task: str = ""
    start_time: float = field(default_factory=time.time)

    @property
    def progress_percent(self) -> float:
        if self.total_tasks == 0:
            return 100.0
        return round((self.completed_tasks / self.total_tasks) * 100, 1)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time


@dataclass
class BatchAnalysisResult:
    """Result of batch analysis."""

    total_replays: int
    successful: int
    failed: int
    skipped: int
    total_duration_seconds: float
    results: list[ReplayTaskResult] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_replays == 0:
            return 0.0
        return round((self.successful / self.total_replays) * 100, 1)

    def to_dict(self) -> dict:
        return {
            "total_replays": self.total_replays,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "success_rate": self.success_rate,
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "results": [r.to_dict() for r in self.results],
        }


class BatchAnalyzer:
    """
    Analyse many replays concurrently against one baseline store.

    Analyses run on a thread pool; every write goes through a single
    BaselineWriter, so rollups are never updated by two threads at once.

    Usage:
        batch = BatchAnalyzer(store, workers=4)
        results = batch.analyze_batch([Path("g1.json"), Path("g2.json")])
    """

    def __init__(
        self,
        store: BaselineStore,
        workers: int = DEFAULT_WORKERS,
        decoder: Decoder | None = None,
        config: AnalysisConfig | None = None,
        progress_callback: Callable[[BatchAnalysisProgress], None] | None = None,
    ):
        """
        Initialize the batch analyzer.

        Args:
            store: Shared baseline store
            workers: Number of worker threads
            decoder: Replay decoder (default: decoded-JSON loader)
            config: Analysis settings
            progress_callback: Optional callback for progress updates
        """
        self.store = store
        self.workers = max(1, min(workers, MAX_WORKERS))
        self.decoder = decoder
        self.config = config or AnalysisConfig()
        self.progress_callback = progress_callback

        logger.info(f"BatchAnalyzer initialized with {self.workers} workers")

    def _analyze_one(self, analyzer: ReplayAnalyzer, path: Path, force: bool) -> ReplayTaskResult:
        start_time = time.time()
        try:
            result = analyzer.analyze_file(path, force=force)
        except Exception as e:
            # One bad replay must not abort the batch
            logger.warning(f"Failed to analyze {path}: {e}")
            return ReplayTaskResult(
                replay_path=str(path),
                success=False,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
            )

        scores = [p.suspicion_score for p in result.players]
        return ReplayTaskResult(
            replay_path=str(path),
            success=True,
            duration_seconds=time.time() - start_time,
            game_id=result.game_id,
            skipped=result.skipped,
            players_analyzed=len(result.players),
            players_flagged=sum(1 for s in scores if s > 0),
            max_suspicion_score=max(scores, default=0),
        )

    def analyze_batch(self, replay_paths: list[Path], force: bool = False) -> BatchAnalysisResult:
        """
        Analyse several replays in parallel.

        Args:
            replay_paths: Paths to decoded replay exports
            force: Re-analyse games that are already stored

        Returns:
            BatchAnalysisResult with one entry per replay
        """
        if not replay_paths:
            return BatchAnalysisResult(
                total_replays=0, successful=0, failed=0, skipped=0, total_duration_seconds=0.0
            )

        progress = BatchAnalysisProgress(total_tasks=len(replay_paths))
        start_time = time.time()
        results: list[ReplayTaskResult] = []

        logger.info(
            f"Starting batch analysis of {len(replay_paths)} replays with {self.workers} workers"
        )

        with BaselineWriter(self.store) as writer:
            analyzer = ReplayAnalyzer(
                self.store, writer=writer, decoder=self.decoder, config=self.config
            )
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                future_to_path = {
                    executor.submit(self._analyze_one, analyzer, Path(path), force): path
                    for path in replay_paths
                }

                for future in as_completed(future_to_path):
                    progress.current_task = str(future_to_path[future])
                    result = future.result()
                    results.append(result)

                    progress.completed_tasks += 1
                    if not result.success:
                        progress.failed_tasks += 1

                    if self.progress_callback:
                        self.progress_callback(progress)

        total_duration = time.time() - start_time
        successful = sum(1 for r in results if r.success)
        skipped = sum(1 for r in results if r.skipped)

        logger.info(
            f"Batch analysis complete: {successful}/{len(results)} successful "
            f"({skipped} skipped) in {total_duration:.1f}s"
        )

        return BatchAnalysisResult(
            total_replays=len(results),
            successful=successful,
            failed=len(results) - successful,
            skipped=skipped,
            total_duration_seconds=total_duration,
            results=results,
        )

    def analyze_directory(
        self,
        directory: Path,
        recursive: bool = True,
        suffix: str = ".json",
        force: bool = False,
    ) -> BatchAnalysisResult:
        """
        Analyse all decoded replays in a directory.

        Args:
            directory: Directory to scan
            recursive: Whether to scan subdirectories
            suffix: Replay file suffix; gzip-compressed copies are included
            force: Re-analyse games that are already stored

        Returns:
            BatchAnalysisResult with all results
        """
        replay_paths = find_replays(directory, recursive=recursive, suffix=suffix)
        logger.info(f"Found {len(replay_paths)} replay files in {directory}")

        return self.analyze_batch(replay_paths, force=force)
