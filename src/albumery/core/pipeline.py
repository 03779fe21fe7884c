# ABOUTME: The resolution engine: parallel per-directory analysis, then grouping, planning and execution.
# ABOUTME: Destructive work runs sequentially, behind the safety verifier, with every step in the ledger.

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from pathlib import Path

from albumery.core.config import ConfigError, EngineConfig
from albumery.core.decisions import (
    DecisionState,
    Rationale,
    ResolutionDecision,
    ReviewItem,
    ReviewReason,
)
from albumery.core.executor import ActionKind, Executor, ExecutorError
from albumery.core.grouper import group
from albumery.core.layout import already_placed, destination_for, unique_path
from albumery.core.planner import plan
from albumery.core.progress import (
    CancellationToken,
    JobStatusSink,
    NullSink,
    ProgressEvent,
    RateLimitedSink,
)
from albumery.core.quality import score_group
from albumery.core.scanner import AlbumDirectory, ProbedAlbum, find_album_directories, probe_album
from albumery.core.verifier import (
    VerificationReport,
    VerificationState,
    check_leftovers,
    verify_empty,
)
from albumery.db.ledger import LedgerFilter, RunLedger
from albumery.db.mapping import LedgerEntry
from albumery.formats.audio import AudioProbe, probe_audio
from albumery.metadata.arbiter import arbitrate
from albumery.metadata.extractors import candidate_from_tags, extract
from albumery.metadata.provider import DiscogsLookup, DiscogsMatch, OracleTimeout, TagReader
from albumery.metadata.types import MetadataRecord, RecordStatus

logger = logging.getLogger(__name__)

_RESUMABLE = (DecisionState.PLANNED, DecisionState.VERIFIED)


@dataclass
class AnalyzedAlbum:
    """Output of the per-directory stage: probed audio plus arbitrated metadata."""

    probed: ProbedAlbum
    record: MetadataRecord

    @property
    def path(self) -> Path:
        return self.probed.path


@dataclass
class ExecutionPlan:
    """The executable part of a decision, whether fresh or resumed from the ledger."""

    decision_id: int
    state: DecisionState
    keep: str | None
    delete_candidates: tuple[str, ...]
    keep_record: MetadataRecord | None

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "ExecutionPlan":
        return cls(
            decision_id=entry.id,
            state=entry.state,
            keep=entry.keep,
            delete_candidates=tuple(entry.delete_candidates),
            keep_record=entry.keep_record(),
        )


@dataclass
class RunReport:
    """Everything a run found and did."""

    root: Path
    dry_run: bool
    run_id: int | None = None
    records: list[MetadataRecord] = field(default_factory=list)
    unplayable: list[Path] = field(default_factory=list)
    decisions: list[ResolutionDecision] = field(default_factory=list)
    review_items: list[ReviewItem] = field(default_factory=list)
    verifications: list[VerificationReport] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    resumed: list[int] = field(default_factory=list)
    executed: list[int] = field(default_factory=list)
    decisions_verified: int = 0
    decisions_rejected: int = 0
    cancelled: bool = False

    @property
    def groups_found(self) -> int:
        return len(self.decisions)

    @property
    def proposed_deletes(self) -> list[str]:
        return [path for d in self.decisions for path in d.delete_candidates]

    def summary(self) -> dict[str, object]:
        return {
            "albums": len(self.records),
            "unplayable": len(self.unplayable),
            "groups": self.groups_found,
            "duplicates": sum(1 for d in self.decisions if len(d.group) > 1),
            "review_items": len(self.review_items),
            "verified": self.decisions_verified,
            "rejected": self.decisions_rejected,
            "executed": len(self.executed),
            "skipped": len(self.skipped),
            "cancelled": self.cancelled,
        }


class ResolutionEngine:
    """Runs the reconstruction-and-resolution flow over one collection root.

    Collaborators are injected: the tag reader, Discogs oracle, executor and
    ledger are all optional for dry runs. Executing runs need a ledger, an
    executor and an archive root.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        ledger: RunLedger | None = None,
        executor: Executor | None = None,
        tag_reader: TagReader | None = None,
        oracle: DiscogsLookup | None = None,
        probe: AudioProbe = probe_audio,
        sink: JobStatusSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._executor = executor
        self._tag_reader = tag_reader
        self._oracle = oracle
        self._probe = probe
        self._sink = RateLimitedSink(sink or NullSink(), interval=config.progress_interval)
        self._cancel = cancel or CancellationToken()
        self._probed: dict[str, ProbedAlbum] = {}

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel

    # --- per-directory analysis (worker threads) ---

    def analyze(
        self,
        album: AlbumDirectory,
        root: Path,
        oracle_pool: ThreadPoolExecutor | None = None,
    ) -> AnalyzedAlbum | None:
        """Probe, read tags, extract and arbitrate one directory.

        Returns None for directories with no playable audio or when the run
        has been cancelled.
        """
        if self._cancel.cancelled:
            return None

        probed = probe_album(album, self._probe)
        if not probed.is_playable:
            logger.info("Skipping %s: no playable audio", album.path)
            return AnalyzedAlbum(probed=probed, record=_unplayable_record(album.path))

        try:
            relative = album.path.relative_to(root)
        except ValueError:
            relative = Path(album.path.name)
        candidates = extract(relative.as_posix() if relative.parts else album.path.name)

        if self._tag_reader is not None:
            tag_candidate = candidate_from_tags(self._tag_reader.read_tags(album.path))
            if tag_candidate is not None:
                candidates.append(tag_candidate)

        record = arbitrate(candidates, self._config, directory=str(album.path))

        if self._oracle is not None and oracle_pool is not None and record.is_resolved:
            match = self._ask_oracle(oracle_pool, self._oracle, record)
            if match is not None:
                candidates.append(match.to_candidate())
                record = arbitrate(candidates, self._config, directory=str(album.path))

        return AnalyzedAlbum(probed=probed, record=record)

    def _ask_oracle(
        self, pool: ThreadPoolExecutor, oracle: DiscogsLookup, record: MetadataRecord
    ) -> DiscogsMatch | None:
        future: Future = pool.submit(oracle.lookup, record.artist, record.title)
        try:
            return future.result(timeout=self._config.discogs_timeout)
        except (FuturesTimeout, OracleTimeout):
            logger.warning(
                "Discogs lookup timed out for %s (%s), continuing without it",
                record.directory,
                record.display_name,
            )
            return None

    # --- the run ---

    def _check_ready(self, root: Path) -> None:
        if not root.is_dir():
            raise NotADirectoryError(f"Collection root is not a directory: {root}")
        if self._config.dry_run:
            return
        if self._ledger is None or self._executor is None:
            raise ConfigError("Executing a run needs both a ledger and an executor")
        if self._config.archive_root is None:
            raise ConfigError("Executing a run needs an archive root for displaced audio")

    def _emit(self, report: RunReport, processed: int, total: int, final: bool = False) -> None:
        self._sink.emit(
            ProgressEvent(
                processed=processed,
                total=total,
                groups_found=report.groups_found,
                decisions_verified=report.decisions_verified,
                decisions_rejected=report.decisions_rejected,
                final=final,
            )
        )

    def run(self, root: Path) -> RunReport:
        """Analyze `root`, plan every group and, unless dry-running, execute.

        Raises:
            LedgerWriteError: If the ledger cannot be written; the run stops.
            ConfigError: If an executing run lacks a ledger, executor or archive root.
        """
        root = root.resolve()
        self._check_ready(root)
        report = RunReport(root=root, dry_run=self._config.dry_run)
        ledger = None if self._config.dry_run else self._ledger

        run_id = None
        if ledger is not None:
            run_id = report.run_id = ledger.start_run(root, dry_run=False)
            self._resume_pending(ledger, report)

        albums = find_album_directories(
            root,
            self._config.audio_extensions,
            exclude=[p for p in (self._config.archive_root, self._config.trash_root) if p],
        )
        analyzed = self._analyze_all(albums, root, report)

        if not report.cancelled:
            self._plan(analyzed, report)
            if ledger is not None and run_id is not None:
                for item in report.review_items:
                    ledger.add_review_item(item, run_id)
                self._execute_all(ledger, run_id, report)

        self._emit(report, len(analyzed), len(albums), final=True)
        if ledger is not None and run_id is not None:
            status = "cancelled" if report.cancelled else "completed"
            ledger.finish_run(run_id, status, report.summary())
        return report

    def _analyze_all(
        self, albums: list[AlbumDirectory], root: Path, report: RunReport
    ) -> list[AnalyzedAlbum]:
        total = len(albums)
        results: list[AnalyzedAlbum] = []
        workers = self._config.workers
        oracle_pool = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="albumery-discogs")
            if self._oracle is not None
            else None
        )
        try:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="albumery-worker"
            ) as pool:
                futures = [pool.submit(self.analyze, album, root, oracle_pool) for album in albums]
                for processed, future in enumerate(as_completed(futures), start=1):
                    if self._cancel.cancelled:
                        for pending in futures:
                            pending.cancel()
                        report.cancelled = True
                        break
                    analyzed = future.result()
                    if analyzed is not None:
                        results.append(analyzed)
                    self._emit(report, processed, total)
        finally:
            if oracle_pool is not None:
                oracle_pool.shutdown(wait=False, cancel_futures=True)

        if self._cancel.cancelled:
            report.cancelled = True

        results.sort(key=lambda a: str(a.path))
        for item in results:
            if item.probed.is_playable:
                report.records.append(item.record)
                self._probed[str(item.path)] = item.probed
            else:
                report.unplayable.append(item.path)
        return [a for a in results if a.probed.is_playable]


    def _plan(self, analyzed: list[AnalyzedAlbum], report: RunReport) -> None:
        assets = {str(a.path): a.probed.assets for a in analyzed}
        grouping = group(report.records, self._config)
        report.review_items.extend(grouping.rejected)

        for duplicate_group in grouping.groups:
            members = {d: assets[d] for d in duplicate_group.directories}
            durations = {d: sum(a.duration for a in member) for d, member in members.items()}
            decision = plan(
                duplicate_group,
                score_group(members),
                durations=durations,
                duration_tolerance=self._config.duration_tolerance,
            )
            report.decisions.append(decision)
            if decision.rationale is Rationale.TIE_REQUIRES_REVIEW:
                logger.warning("Quality tie in %s, needs review", duplicate_group.display_name)
                report.review_items.append(
                    ReviewItem(
                        path=duplicate_group.directories[0],
                        reason=ReviewReason.AMBIGUOUS_TIE,
                        detail=f"{len(duplicate_group)} copies of "
                        f"{duplicate_group.display_name} score equally",
                        context={
                            "members": duplicate_group.directories,
                            "scores": decision.scores_json(),
                        },
                    )
                )
            elif decision.rationale is Rationale.DURATION_MISMATCH:
                logger.warning(
                    "Copies of %s differ in length, needs review", duplicate_group.display_name
                )
                report.review_items.append(
                    ReviewItem(
                        path=duplicate_group.directories[0],
                        reason=ReviewReason.DURATION_MISMATCH,
                        detail=f"total durations of {duplicate_group.display_name} differ by "
                        f"more than {self._config.duration_tolerance:.0%}",
                        context={
                            "members": duplicate_group.directories,
                            "durations": {d: round(s, 1) for d, s in durations.items()},
                        },
                    )
                )

    # --- execution (coordinating thread only) ---

    @property
    def _run_ledger(self) -> RunLedger:
        if self._ledger is None:
            raise ConfigError("Executing a run needs a ledger")
        return self._ledger

    @property
    def _run_executor(self) -> Executor:
        if self._executor is None:
            raise ConfigError("Executing a run needs an executor")
        return self._executor

    @property
    def _archive_root(self) -> Path:
        if self._config.archive_root is None:
            raise ConfigError("Executing a run needs an archive root for displaced audio")
        return self._config.archive_root

    def _needs_action(self, decision: ResolutionDecision) -> bool:
        if decision.delete_candidates:
            return True
        if decision.state is DecisionState.NEEDS_REVIEW:
            return True
        return self._keeper_target(decision.keep, _member(decision, decision.keep)) is not None

    def _keeper_target(self, keep: str | None, record: MetadataRecord | None) -> Path | None:
        """Where the keeper should move, or None when it stays put."""
        dest = self._config.destination_root
        if dest is None or keep is None or record is None:
            return None
        target = destination_for(record, dest)
        if already_placed(Path(keep), target):
            return None
        return unique_path(target)

    def _resume_pending(self, ledger: RunLedger, report: RunReport) -> None:
        for entry in ledger.query(LedgerFilter(states=_RESUMABLE)):
            if self._cancel.cancelled:
                report.cancelled = True
                return
            logger.info("Resuming decision %d (%s)", entry.id, entry.state.value)
            report.resumed.append(entry.id)
            self._execute(ExecutionPlan.from_entry(entry), report)

    def _execute_all(self, ledger: RunLedger, run_id: int, report: RunReport) -> None:
        for decision in report.decisions:
            if self._cancel.cancelled:
                report.cancelled = True
                return
            if not self._needs_action(decision):
                continue

            existing = ledger.find_by_fingerprint(decision.fingerprint)
            if existing is not None:
                # Either finished, held for review, or already resumed above.
                decision.decision_id = existing.id
                decision.state = existing.state
                report.skipped.append(decision.fingerprint)
                continue

            decision_id = ledger.append(decision, run_id)
            if decision.state is DecisionState.NEEDS_REVIEW:
                continue
            execution = ExecutionPlan(
                decision_id=decision_id,
                state=decision.state,
                keep=decision.keep,
                delete_candidates=decision.delete_candidates,
                keep_record=_member(decision, decision.keep),
            )
            self._execute(execution, report)
            decision.state = execution.state

    def _transition(self, execution: ExecutionPlan, state: DecisionState, report: RunReport, **kw):
        execution.state = self._run_ledger.transition(
            execution.decision_id, state, run_id=report.run_id, **kw
        )

    def _note_cancel(self, execution: ExecutionPlan, stage: str, report: RunReport) -> None:
        report.cancelled = True
        self._run_ledger.note_event(
            execution.decision_id, run_id=report.run_id, stage=stage, note="cancelled"
        )
        logger.warning("Run cancelled during %s of decision %d", stage, execution.decision_id)

    def _execute(self, execution: ExecutionPlan, report: RunReport) -> None:
        if execution.state is DecisionState.PLANNED:
            if not self._archive_and_verify(execution, report):
                return
        if execution.state is not DecisionState.VERIFIED:
            return
        if self._cancel.cancelled:
            self._note_cancel(execution, "before_delete", report)
            return

        for loser in execution.delete_candidates:
            path = Path(loser)
            if not path.exists():
                continue
            # The folder may have changed since it was verified, possibly in an earlier run.
            verification = verify_empty(path, self._config, self._cancel)
            if verification.cancelled:
                self._note_cancel(execution, "before_delete", report)
                return
            if not verification.verified:
                report.verifications.append(verification)
                self._reject(execution, [verification], report)
                return
            if not self._call_executor(execution, report, path):
                return

        target = self._keeper_target(execution.keep, execution.keep_record)
        if target is not None and execution.keep and Path(execution.keep).exists():
            if not self._call_executor(execution, report, Path(execution.keep), target):
                return

        self._transition(execution, DecisionState.EXECUTED, report)
        report.executed.append(execution.decision_id)

    def _archive_and_verify(self, execution: ExecutionPlan, report: RunReport) -> bool:
        """Check nothing unexpected would stay behind, archive the losers' audio, then verify.

        Returns True when the decision reached VERIFIED.
        """
        archive_root = self._archive_root
        pending: list[ProbedAlbum] = []
        rejections: list[VerificationReport] = []
        for loser in execution.delete_candidates:
            loser_path = Path(loser)
            if not loser_path.exists():
                continue
            probed = self._probed.get(loser) or _probe_directory(
                loser_path, self._config, self._probe
            )
            leftovers = check_leftovers(
                loser_path, [a.path for a in probed.assets], self._config
            )
            if leftovers.state is VerificationState.REJECTED:
                report.verifications.append(leftovers)
                rejections.append(leftovers)
            pending.append(probed)
        if rejections:
            self._reject(execution, rejections, report)
            return False

        for probed in pending:
            if self._cancel.cancelled:
                self._note_cancel(execution, "archiving", report)
                return False
            archive_dir = archive_root / probed.path.name
            for asset in probed.assets:
                if not asset.path.exists():
                    continue
                destination = archive_dir / asset.path.relative_to(probed.path)
                if not self._call_executor(
                    execution, report, asset.path, unique_path(destination)
                ):
                    return False

        for loser in execution.delete_candidates:
            verification = verify_empty(Path(loser), self._config, self._cancel)
            report.verifications.append(verification)
            if verification.cancelled:
                self._note_cancel(execution, verification.stage.value, report)
                return False
            if not verification.verified:
                rejections.append(verification)

        if rejections:
            self._reject(execution, rejections, report)
            return False

        self._transition(execution, DecisionState.VERIFIED, report, stage="verified")
        report.decisions_verified += 1
        return True

    def _reject(
        self,
        execution: ExecutionPlan,
        rejections: list[VerificationReport],
        report: RunReport,
    ) -> None:
        """Put back everything the decision already moved or deleted, then hold it for review."""
        ledger = self._run_ledger
        rollback = ledger.roll_back(execution.decision_id, self._run_executor)
        if not rollback.ok:
            logger.error(
                "Could not roll back decision %d: %s", execution.decision_id, rollback.message
            )

        self._transition(
            execution,
            DecisionState.NEEDS_REVIEW,
            report,
            stage=rejections[0].stage.value,
            note="; ".join(r.reason or "" for r in rejections),
        )
        report.decisions_rejected += 1
        for rejection in rejections:
            item = ReviewItem(
                path=str(rejection.directory),
                reason=ReviewReason.VERIFICATION_REJECTED,
                detail=rejection.reason or "",
                context={
                    "decision_id": execution.decision_id,
                    "rollback": rollback.status.value,
                    "restored": rollback.restored,
                    **rejection.describe(),
                },
            )
            report.review_items.append(item)
            ledger.add_review_item(item, report.run_id)

    def _call_executor(
        self,
        execution: ExecutionPlan,
        report: RunReport,
        source: Path,
        target: Path | None = None,
    ) -> bool:
        """Move `source` to `target`, or delete it when there is no target, and record it.

        Failures hold the decision for review.
        """
        ledger = self._run_ledger
        executor = self._run_executor
        kind = ActionKind.DELETE if target is None else ActionKind.MOVE
        try:
            if target is None:
                receipt = executor.delete(source)
            else:
                receipt = executor.move(source, target)
        except ExecutorError as exc:
            logger.warning(
                "Executor failed on %s for decision %d: %s", source, execution.decision_id, exc
            )
            ledger.record_action(
                execution.decision_id,
                run_id=report.run_id,
                kind=kind,
                source=source,
                target=target,
                error=str(exc),
            )
            item = ReviewItem(
                path=str(source),
                reason=ReviewReason.EXECUTOR_FAILURE,
                detail=str(exc),
                context={
                    "decision_id": execution.decision_id,
                    "kind": kind.value,
                    "state": execution.state.value,
                    "target": str(target) if target else None,
                },
            )
            report.review_items.append(item)
            ledger.add_review_item(item, report.run_id)
            return False

        ledger.record_action(
            execution.decision_id,
            run_id=report.run_id,
            kind=kind,
            source=source,
            target=target,
            receipt=receipt,
        )
        return True


def _member(decision: ResolutionDecision, directory: str | None) -> MetadataRecord | None:
    for member in decision.group.members:
        if member.directory == directory:
            return member
    return None


def _unplayable_record(path: Path) -> MetadataRecord:
    return MetadataRecord(directory=str(path), status=RecordStatus.UNRESOLVED, confidence=0.0)


def _probe_directory(path: Path, config: EngineConfig, probe: AudioProbe) -> ProbedAlbum:
    albums = find_album_directories(path, config.audio_extensions)
    files = sorted(f for album in albums for f in album.audio_files)
    return probe_album(AlbumDirectory(path=path, audio_files=files), probe)
