# ABOUTME: Integration tests for the resolution engine over real directory trees.
# ABOUTME: Covers dry runs, execution, ties, verification rejection, failures, resume and undo.

from pathlib import Path

import pytest

from albumery.core.config import ConfigError, EngineConfig
from albumery.core.decisions import DecisionState, Rationale, ReviewReason
from albumery.core.pipeline import ResolutionEngine
from albumery.core.progress import CancellationToken, ProgressEvent
from albumery.db.connection import open_ledger
from albumery.db.ledger import LedgerWriteError, RunLedger, UndoStatus
from albumery.metadata.provider import DiscogsMatch, TagSnapshot

FLAC_DIR = "Artist - Title (2020) [Label]"
MP3_DIR = "artist-title-2020-group"
OTHER_DIR = "Other Band - Other Record (2011)"

LEDGER_TABLES = ("decisions", "decision_events", "actions", "review_items")


def _path(root: Path, name: str) -> str:
    return str((root / name).resolve())


def _content_counts(ledger) -> dict[str, int]:
    counts = ledger.counts()
    return {table: counts[table] for table in LEDGER_TABLES}


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)


class TestDryRun:
    """A dry run plans everything and touches nothing."""

    def test_plans_quality_win(self, collection: Path, fake_probe):
        sink = RecordingSink()
        config = EngineConfig(workers=2, progress_interval=0.0)
        report = ResolutionEngine(config, probe=fake_probe, sink=sink).run(collection)

        assert report.dry_run
        assert len(report.records) == 3
        assert all(r.is_resolved for r in report.records)

        duplicates = [d for d in report.decisions if len(d.group) > 1]
        assert len(duplicates) == 1
        decision = duplicates[0]
        assert decision.rationale is Rationale.QUALITY_WIN
        assert decision.keep == _path(collection, FLAC_DIR)
        assert report.proposed_deletes == [_path(collection, MP3_DIR)]

        assert (collection / MP3_DIR / "01 - Track 1.mp3").exists()
        assert report.executed == []
        assert sink.events[-1].final
        assert sink.events[-1].groups_found == report.groups_found

    def test_real_probe_prefers_flac(self, collection: Path):
        report = ResolutionEngine(EngineConfig(progress_interval=0.0)).run(collection)
        assert report.proposed_deletes == [_path(collection, MP3_DIR)]

    def test_unresolved_directory_goes_to_review(self, tmp_path: Path, make_album, fake_probe):
        make_album(tmp_path / "random folder", "mp3", 2)
        report = ResolutionEngine(EngineConfig(), probe=fake_probe).run(tmp_path)
        assert report.decisions == []
        (item,) = report.review_items
        assert item.reason is ReviewReason.LOW_CONFIDENCE
        assert item.path == _path(tmp_path, "random folder")

    def test_unplayable_directory_skipped(self, tmp_path: Path, fake_probe):
        album = tmp_path / "Artist - Title (2020)"
        album.mkdir()
        (album / "01 corrupt.mp3").write_bytes(b"junk")
        report = ResolutionEngine(EngineConfig(), probe=fake_probe).run(tmp_path)
        assert report.unplayable == [album.resolve()]
        assert report.records == []

    def test_tie_requires_review(self, tmp_path: Path, make_album, fake_probe):
        make_album(tmp_path / "Artist - Title (2020)", "flac", 3)
        make_album(tmp_path / "Artist - Title (2020) [Label]", "flac", 3)
        report = ResolutionEngine(EngineConfig(), probe=fake_probe).run(tmp_path)
        (decision,) = report.decisions
        assert decision.rationale is Rationale.TIE_REQUIRES_REVIEW
        assert decision.state is DecisionState.NEEDS_REVIEW
        assert [i.reason for i in report.review_items] == [ReviewReason.AMBIGUOUS_TIE]

    def test_tags_and_oracle_enrich_records(
        self, collection: Path, fake_probe, tag_reader_factory, oracle_factory
    ):
        tags = tag_reader_factory(
            {OTHER_DIR: TagSnapshot(artist="Other Band", album="Other Record", year=2011)}
        )
        match = DiscogsMatch(
            release_id=9,
            artist="Artist",
            title="Title",
            year=2020,
            catalog_number="LBL001",
            label="Label",
            score=0.95,
        )
        oracle = oracle_factory({("Artist", "Title"): match})
        report = ResolutionEngine(
            EngineConfig(), probe=fake_probe, tag_reader=tags, oracle=oracle
        ).run(collection)

        by_dir = {Path(r.directory).name: r for r in report.records}
        assert by_dir[FLAC_DIR].catalog_number == "LBL001"
        assert by_dir[MP3_DIR].catalog_number == "LBL001"
        assert any(c.source.value == "embedded_tag" for c in by_dir[OTHER_DIR].candidates)
        assert ("Artist", "Title") in oracle.calls

    def test_oracle_timeout_is_not_fatal(self, collection: Path, fake_probe, oracle_factory):
        oracle = oracle_factory(timeout=True)
        report = ResolutionEngine(EngineConfig(), probe=fake_probe, oracle=oracle).run(collection)
        assert all(r.is_resolved for r in report.records)
        assert all(r.catalog_number is None for r in report.records)
        assert len(oracle.calls) == 3


class TestReadiness:
    """Runs refuse to start without what they need."""

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(NotADirectoryError):
            ResolutionEngine(EngineConfig()).run(tmp_path / "missing")

    def test_executing_without_ledger(self, collection: Path, exec_config, fake_executor):
        with pytest.raises(ConfigError):
            ResolutionEngine(exec_config, executor=fake_executor).run(collection)

    def test_executing_without_archive(self, collection: Path, ledger, fake_executor):
        config = EngineConfig(dry_run=False)
        with pytest.raises(ConfigError, match="archive"):
            ResolutionEngine(config, ledger=ledger, executor=fake_executor).run(collection)


class TestExecution:
    """Executing runs archive, verify, delete and record every step."""

    def _engine(self, config, ledger, executor, probe, **kwargs) -> ResolutionEngine:
        return ResolutionEngine(config, ledger=ledger, executor=executor, probe=probe, **kwargs)

    def test_quality_win_executes(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        report = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)

        assert len(report.executed) == 1
        assert report.decisions_verified == 1
        assert not (collection / MP3_DIR).exists()
        assert (collection / FLAC_DIR).exists()
        archived = exec_config.archive_root / MP3_DIR
        assert sorted(p.name for p in archived.iterdir()) == [
            "01 - Track 1.mp3",
            "02 - Track 2.mp3",
            "03 - Track 3.mp3",
        ]

        (entry,) = ledger.query()
        assert entry.state is DecisionState.EXECUTED
        states = [e.to_state for e in ledger.events(entry.id)]
        assert states == [DecisionState.PLANNED, DecisionState.VERIFIED, DecisionState.EXECUTED]
        kinds = [a.kind for a in ledger.actions(entry.id)]
        assert kinds == ["move", "move", "move", "delete"]

    def test_rerun_adds_nothing(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        before = _content_counts(ledger)
        report = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        assert _content_counts(ledger) == before
        assert report.executed == []

    def test_tie_held_for_review_and_idempotent(
        self, tmp_path: Path, make_album, exec_config, ledger, fake_executor, fake_probe
    ):
        root = tmp_path / "music"
        make_album(root / "Artist - Title (2020)", "flac", 3)
        make_album(root / "Artist - Title (2020) [Label]", "flac", 3)

        self._engine(exec_config, ledger, fake_executor, fake_probe).run(root)
        (entry,) = ledger.query()
        assert entry.state is DecisionState.NEEDS_REVIEW
        assert [i.reason for i in ledger.review_queue()] == [ReviewReason.AMBIGUOUS_TIE]
        assert fake_executor.calls == []

        before = _content_counts(ledger)
        second = self._engine(exec_config, ledger, fake_executor, fake_probe).run(root)
        assert _content_counts(ledger) == before
        assert second.skipped == [entry.fingerprint]

    def test_leftover_file_rejects_verification(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        (collection / MP3_DIR / "notes.txt").write_text("ripped by me")
        report = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)

        assert report.executed == []
        assert report.decisions_rejected == 1
        (entry,) = ledger.query()
        assert entry.state is DecisionState.NEEDS_REVIEW
        assert (collection / MP3_DIR / "notes.txt").exists()
        (item,) = ledger.review_queue()
        assert item.reason is ReviewReason.VERIFICATION_REJECTED
        assert item.context["stage"] == "checking_metadata"
        assert fake_executor.calls == []
        assert len(list((collection / MP3_DIR).glob("*.mp3"))) == 3

    def test_stray_audio_rolls_back_archived_tracks(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        stray = collection / MP3_DIR / ".extras" / ".bonus.mp3"
        stray.parent.mkdir()
        stray.write_bytes(b"hidden audio")
        report = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)

        assert report.executed == []
        assert report.decisions_rejected == 1
        (entry,) = ledger.query()
        assert entry.state is DecisionState.NEEDS_REVIEW
        assert [kind for kind, _ in fake_executor.calls] == ["move"] * 3 + ["restore"] * 3
        assert len(list((collection / MP3_DIR).glob("*.mp3"))) == 3
        assert stray.exists()
        assert not list((exec_config.archive_root / MP3_DIR).glob("*.mp3"))
        assert [a.status for a in ledger.actions(entry.id)] == ["undone"] * 3

        (item,) = ledger.review_queue()
        assert item.reason is ReviewReason.VERIFICATION_REJECTED
        assert item.context["stage"] == "checking_content"
        assert item.context["rollback"] == "reverted"
        assert len(item.context["restored"]) == 3

    def test_oversized_sidecar_rejects_at_size_check(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        (collection / MP3_DIR / "folder.jpg").write_bytes(b"\xff" * 4096)
        config = exec_config.override(negligible_bytes=1024)
        report = self._engine(config, ledger, fake_executor, fake_probe).run(collection)

        assert report.decisions_rejected == 1
        (item,) = ledger.review_queue()
        assert item.context["stage"] == "checking_size"
        assert item.context["remaining_bytes"] >= 4096
        assert len(list((collection / MP3_DIR).glob("*.mp3"))) == 3
        assert not any(kind == "delete" for kind, _ in fake_executor.calls)

    def test_verified_folder_is_checked_again_before_delete(
        self,
        collection: Path,
        exec_config,
        ledger,
        failing_executor_factory,
        fake_executor,
        fake_probe,
    ):
        """Audio added after verification keeps a resumed decision from deleting."""
        broken = failing_executor_factory({"delete"})
        self._engine(exec_config, ledger, broken, fake_probe).run(collection)
        (entry,) = ledger.query()
        assert entry.state is DecisionState.VERIFIED

        bonus = collection / MP3_DIR / "04 - Bonus.mp3"
        bonus.write_bytes(b"new audio")
        retry = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)

        assert retry.resumed == [entry.id]
        assert retry.executed == []
        assert ledger.get(entry.id).state is DecisionState.NEEDS_REVIEW
        assert bonus.exists()
        assert len(list((collection / MP3_DIR).glob("*.mp3"))) == 4
        assert not any(kind == "delete" for kind, _ in fake_executor.calls)
        rejected = [
            i for i in ledger.review_queue() if i.reason is ReviewReason.VERIFICATION_REJECTED
        ]
        assert [i.context["stage"] for i in rejected] == ["checking_content"]

    def test_duration_mismatch_is_never_resolved(
        self, tmp_path: Path, make_album, exec_config, ledger, fake_executor, fake_probe
    ):
        root = tmp_path / "music"
        make_album(root / "Artist - Title (2020) [Label]", "flac", 3)
        make_album(root / "artist-title-2020-group", "mp3", 1)
        report = self._engine(exec_config, ledger, fake_executor, fake_probe).run(root)

        (decision,) = report.decisions
        assert decision.rationale is Rationale.DURATION_MISMATCH
        assert decision.delete_candidates == ()
        assert fake_executor.calls == []
        (entry,) = ledger.query()
        assert entry.state is DecisionState.NEEDS_REVIEW
        (item,) = ledger.review_queue()
        assert item.reason is ReviewReason.DURATION_MISMATCH
        assert sorted(item.context["durations"].values()) == [180.0, 540.0]

    def test_ledger_write_failure_halts_run(
        self, collection: Path, tmp_path: Path, exec_config, fake_executor, fake_probe
    ):
        class UnwritableLedger(RunLedger):
            def record_action(self, *args, **kwargs):
                raise LedgerWriteError("Could not record action: disk I/O error")

        conn = open_ledger(tmp_path / "unwritable.db")
        try:
            engine = self._engine(exec_config, UnwritableLedger(conn), fake_executor, fake_probe)
            with pytest.raises(LedgerWriteError):
                engine.run(collection)
        finally:
            conn.close()

        assert (collection / MP3_DIR).is_dir()
        assert [kind for kind, _ in fake_executor.calls] == ["move"]

    def test_unreadable_audio_is_never_deleted(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        (collection / MP3_DIR / "04 corrupt.mp3").write_bytes(b"junk")
        self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        assert (collection / MP3_DIR / "04 corrupt.mp3").exists()
        (entry,) = ledger.query()
        assert entry.state is DecisionState.NEEDS_REVIEW

    def test_executor_failure_then_retry(
        self,
        collection: Path,
        exec_config,
        ledger,
        failing_executor_factory,
        fake_executor,
        fake_probe,
    ):
        broken = failing_executor_factory({"delete"})
        report = self._engine(exec_config, ledger, broken, fake_probe).run(collection)
        assert report.executed == []
        (entry,) = ledger.query()
        assert entry.state is DecisionState.VERIFIED
        failed = [a for a in ledger.actions(entry.id) if a.status == "failed"]
        assert [a.kind for a in failed] == ["delete"]
        assert [i.reason for i in ledger.review_queue()] == [ReviewReason.EXECUTOR_FAILURE]

        retry = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        assert retry.resumed == [entry.id]
        assert retry.executed == [entry.id]
        assert ledger.get(entry.id).state is DecisionState.EXECUTED
        assert not (collection / MP3_DIR).exists()

    def test_cancel_mid_execution_then_resume(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        token = CancellationToken()

        class CancellingExecutor:
            def move(self, src, dst):
                receipt = fake_executor.move(src, dst)
                token.cancel()
                return receipt

            def delete(self, path):
                return fake_executor.delete(path)

            def restore(self, receipt):
                fake_executor.restore(receipt)

        first = self._engine(
            exec_config, ledger, CancellingExecutor(), fake_probe, cancel=token
        ).run(collection)
        assert first.cancelled
        (entry,) = ledger.query()
        assert entry.state is DecisionState.PLANNED
        assert ledger.events(entry.id)[-1].note == "cancelled"
        assert (collection / MP3_DIR).exists()

        second = self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        assert second.resumed == [entry.id]
        assert ledger.get(entry.id).state is DecisionState.EXECUTED
        assert not (collection / MP3_DIR).exists()
        assert not list((exec_config.archive_root / MP3_DIR).glob("* (1).mp3"))

    def test_keeper_moves_to_destination_layout(
        self, collection: Path, tmp_path: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        dest = tmp_path / "sorted"
        config = exec_config.override(destination_root=dest)
        report = self._engine(config, ledger, fake_executor, fake_probe).run(collection)

        assert (dest / "Artist" / "Title (2020)" / "01 - Track 1.flac").exists()
        assert (dest / "Other Band" / "Other Record (2011)").is_dir()
        assert len(report.executed) == 2
        rationales = sorted(e.rationale.value for e in ledger.query())
        assert rationales == ["quality_win", "sole_member"]

        before = _content_counts(ledger)
        self._engine(config, ledger, fake_executor, fake_probe).run(collection)
        assert _content_counts(ledger) == before

    def test_undo_restores_loser(
        self, collection: Path, exec_config, ledger, fake_executor, fake_probe
    ):
        self._engine(exec_config, ledger, fake_executor, fake_probe).run(collection)
        (entry,) = ledger.query()

        result = ledger.revert(entry.id, fake_executor)
        assert result.status is UndoStatus.REVERTED
        restored = sorted(p.name for p in (collection / MP3_DIR).iterdir())
        assert restored == [
            "01 - Track 1.mp3",
            "02 - Track 2.mp3",
            "03 - Track 3.mp3",
            "playlist.m3u",
        ]
        assert ledger.get(entry.id).state is DecisionState.REVERTED
        assert ledger.revert(entry.id, fake_executor).status is UndoStatus.NOT_EXECUTED
