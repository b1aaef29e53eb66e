# tests/test_registry.py
"""Tests for the asset registry."""

import tempfile
import threading
from pathlib import Path

import pytest

from assetreg import AssetRegistry, EventBus, FileLog, MemoryLog
from assetreg.activitypub import Actor, verify_registrant
from assetreg.errors import InvalidInput, PersistenceFailure, RegistryError

SAMPLE_CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


class FailingLog(MemoryLog):
    """Memory log that refuses appends while `failing` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def append(self, entry):
        if self.failing:
            raise PersistenceFailure("simulated commit failure")
        super().append(entry)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry():
    """Create an in-memory registry."""
    return AssetRegistry()


class TestRegistryBasics:
    """Registration and lookup."""

    def test_empty_registry(self, registry):
        """An empty registry has count 0 and no record 0."""
        assert registry.count() == 0
        assert registry.get_record(0) is None
        assert len(registry) == 0

    def test_register_single(self, registry):
        """First registration gets handle 0."""
        handle = registry.register(SAMPLE_CID)

        assert handle == 0
        assert registry.get_record(0) == SAMPLE_CID
        assert registry.count() == 1

    def test_sequential_handles(self, registry):
        """Different CIDs receive consecutive handles."""
        assert registry.register("cidA") == 0
        assert registry.register("cidB") == 1
        assert registry.get_record(0) == "cidA"
        assert registry.get_record(1) == "cidB"

    def test_duplicates_get_distinct_handles(self, registry):
        """The same CID registered twice gets two handles."""
        assert registry.register("cidX") == 0
        assert registry.register("cidX") == 1
        assert registry.count() == 2
        assert [r.handle for r in registry.find_by_cid("cidX")] == [0, 1]

    def test_monotonic_handles(self, registry):
        """N registrations return exactly 0..N-1."""
        handles = [registry.register(f"cid{i}") for i in range(25)]
        assert handles == list(range(25))
        assert registry.count() == 25

    def test_records_are_stable(self, registry):
        """A handle keeps resolving to the same CID."""
        registry.register("first")
        for i in range(10):
            registry.register(f"other{i}")
            assert registry.get_record(0) == "first"

    def test_unassigned_handles(self, registry):
        """Out-of-range handles are not found."""
        registry.register("cidA")
        assert registry.get_record(1) is None
        assert registry.get_record(-1) is None
        assert registry.get(99) is None
        assert registry.get_record(True) is None
        assert registry.get(False) is None
        assert "0" not in registry
        assert 0 in registry
        assert 1 not in registry

    def test_list_and_iter_in_handle_order(self, registry):
        """list() and iteration return records by handle."""
        for cid in ["c", "a", "b"]:
            registry.register(cid)
        assert [r.cid for r in registry.list()] == ["c", "a", "b"]
        assert [r.handle for r in registry] == [0, 1, 2]

    def test_register_record_with_registrant(self, registry):
        """register_record() returns the full record."""
        record = registry.register_record("cidA", registrant="https://example.org/users/bob")
        assert record.handle == 0
        assert record.registrant == "https://example.org/users/bob"
        assert registry.get(0) == record


class TestRegistryValidation:
    """Input validation."""

    def test_empty_cid_rejected(self, registry):
        """Empty string is InvalidInput and consumes no handle."""
        with pytest.raises(InvalidInput):
            registry.register("")
        assert registry.count() == 0

    def test_non_string_rejected(self, registry):
        """Non-string CIDs are InvalidInput."""
        with pytest.raises(InvalidInput):
            registry.register(None)
        with pytest.raises(InvalidInput):
            registry.register(42)

    def test_invalid_input_is_value_error(self, registry):
        """InvalidInput can be caught as ValueError."""
        with pytest.raises(ValueError):
            registry.register("")

    def test_lenient_accepts_any_string(self, registry):
        """Non-strict registries do not check CID syntax."""
        assert registry.register("not a cid") == 0

    def test_strict_rejects_malformed(self):
        """Strict registries reject strings that are not CIDs."""
        registry = AssetRegistry(strict=True)
        with pytest.raises(InvalidInput):
            registry.register("cidA")
        assert registry.register(SAMPLE_CID) == 0
        assert registry.register("QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG") == 1


class TestRegistryPersistence:
    """Replay and failure atomicity."""

    def test_replay_memory_log(self):
        """Replaying a log rebuilds handles and counter."""
        log = MemoryLog([
            {"handle": 0, "cid": "cidA"},
            {"handle": 1, "cid": "cidB"},
        ])
        registry = AssetRegistry(log)

        assert registry.count() == 2
        assert registry.get_record(0) == "cidA"
        assert registry.get_record(1) == "cidB"
        assert registry.register("cidC") == 2

    def test_restart_does_not_reuse_handles(self, temp_dir):
        """Handles continue after a restart from the same file."""
        path = temp_dir / "registrations.jsonl"
        first = AssetRegistry(FileLog(path))
        first.register("cidA")
        first.register("cidB")

        second = AssetRegistry(FileLog(path))
        assert second.count() == 2
        assert second.get_record(1) == "cidB"
        assert second.register("cidC") == 2

        third = AssetRegistry(FileLog(path))
        assert [r.cid for r in third] == ["cidA", "cidB", "cidC"]

    def test_unterminated_last_entry_survives_restart(self, temp_dir):
        """A committed entry that lost only its newline is still replayed."""
        path = temp_dir / "registrations.jsonl"
        path.write_bytes(b'{"handle":0,"cid":"cidA"}\n{"handle":1,"cid":"cidB"}')

        registry = AssetRegistry(FileLog(path))

        assert registry.count() == 2
        assert registry.get_record(1) == "cidB"
        assert registry.register("cidC") == 2
        assert [r.cid for r in AssetRegistry(FileLog(path))] == ["cidA", "cidB", "cidC"]

    def test_replay_rejects_gap(self):
        """A log skipping a handle is corrupt."""
        log = MemoryLog([
            {"handle": 0, "cid": "cidA"},
            {"handle": 2, "cid": "cidC"},
        ])
        with pytest.raises(PersistenceFailure):
            AssetRegistry(log)

    def test_replay_rejects_duplicate_handle(self):
        """A log repeating a handle is corrupt."""
        log = MemoryLog([
            {"handle": 0, "cid": "cidA"},
            {"handle": 0, "cid": "cidB"},
        ])
        with pytest.raises(PersistenceFailure):
            AssetRegistry(log)

    def test_replay_rejects_malformed_entry(self):
        """An entry without a CID is corrupt."""
        with pytest.raises(PersistenceFailure):
            AssetRegistry(MemoryLog([{"handle": 0}]))

    def test_failed_commit_changes_nothing(self):
        """A persistence failure leaves counter and records untouched."""
        log = FailingLog()
        registry = AssetRegistry(log)
        registry.register("cidA")

        log.failing = True
        with pytest.raises(PersistenceFailure):
            registry.register("cidB")

        assert registry.count() == 1
        assert registry.get_record(1) is None
        assert len(log) == 1

        log.failing = False
        assert registry.register("cidB") == 1
        assert registry.get_record(1) == "cidB"

    def test_failed_commit_publishes_nothing(self):
        """No event is published for a failed registration."""
        log = FailingLog()
        bus = EventBus()
        seen = []
        bus.subscribe(seen.append)
        registry = AssetRegistry(log, events=bus)

        log.failing = True
        with pytest.raises(PersistenceFailure):
            registry.register("cidA")
        assert seen == []


class TestRegistryConcurrency:
    """Concurrent registration."""

    def test_concurrent_handles_are_unique_and_gap_free(self):
        """Threads registering at once get distinct, contiguous handles."""
        registry = AssetRegistry()
        handles = []
        handles_lock = threading.Lock()

        def worker(n):
            for i in range(50):
                handle = registry.register(f"cid-{n}-{i}")
                with handles_lock:
                    handles.append(handle)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(handles) == list(range(400))
        assert registry.count() == 400
        for handle in range(400):
            assert registry.get_record(handle) is not None

    def test_concurrent_file_log_replays_cleanly(self, temp_dir):
        """Concurrent appends to a file log replay in handle order."""
        path = temp_dir / "registrations.jsonl"
        registry = AssetRegistry(FileLog(path))

        threads = [
            threading.Thread(target=lambda n=n: [registry.register(f"c{n}-{i}") for i in range(10)])
            for n in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        replayed = AssetRegistry(FileLog(path))
        assert replayed.count() == 40
        assert [r.cid for r in replayed] == [r.cid for r in registry]


class TestRegistryEvents:
    """Registration notifications."""

    def test_event_published_after_commit(self):
        """Subscribers see the record already committed."""
        bus = EventBus()
        registry = AssetRegistry(events=bus)
        observed = []

        def subscriber(event):
            observed.append((event.handle, event.cid, registry.get_record(event.handle)))

        bus.subscribe(subscriber)
        registry.register("cidA")
        registry.register("cidB")

        assert observed == [(0, "cidA", "cidA"), (1, "cidB", "cidB")]

    def test_failing_subscriber_does_not_undo_registration(self):
        """A subscriber error leaves the registration in place."""
        bus = EventBus()

        def broken(event):
            raise RuntimeError("indexer down")

        bus.subscribe(broken)
        registry = AssetRegistry(events=bus)

        assert registry.register("cidA") == 0
        assert registry.get_record(0) == "cidA"

    def test_actor_signs_events(self):
        """With an actor configured, events are signed and attributed."""
        actor = Actor.generate("alice")
        bus = EventBus()
        events = []
        bus.subscribe(events.append)
        registry = AssetRegistry(events=bus, actor=actor)

        record = registry.register_record(SAMPLE_CID)

        assert record.registrant == actor.id
        assert len(events) == 1
        assert events[0].signature is not None
        assert verify_registrant(events[0], actor)

    def test_unusable_actor_key_rejected_up_front(self):
        """An actor whose key cannot be loaded is refused at construction."""
        with pytest.raises(ValueError):
            AssetRegistry(actor=Actor("alice", b"not a key"))

    def test_signing_failure_still_returns_handle(self, monkeypatch):
        """If signing fails after commit, the event goes out unsigned."""
        def broken_sign(event, actor):
            raise RuntimeError("signer crashed")

        monkeypatch.setattr("assetreg.registry.registry.sign_event", broken_sign)
        bus = EventBus()
        events = []
        bus.subscribe(events.append)
        log = MemoryLog()
        registry = AssetRegistry(log, events=bus, actor=Actor.generate("alice"))

        assert registry.register("cidA") == 0
        assert registry.get_record(0) == "cidA"
        assert len(log) == 1
        assert len(events) == 1
        assert events[0].signature is None
        assert registry.register("cidB") == 1


class TestReadOnlyRegistry:
    """Registries opened for reading."""

    def test_reads_without_touching_log(self, temp_dir):
        """A read-only registry never writes, even over a torn tail."""
        path = temp_dir / "registrations.jsonl"
        AssetRegistry(FileLog(path)).register("cidA")
        with open(path, "ab") as f:
            f.write(b'{"handle": 1, "ci')
        before = path.read_bytes()

        registry = AssetRegistry(FileLog(path), read_only=True)

        assert registry.count() == 1
        assert registry.get_record(0) == "cidA"
        assert path.read_bytes() == before

    def test_register_refused(self):
        """register() on a read-only registry raises and changes nothing."""
        registry = AssetRegistry(MemoryLog([{"handle": 0, "cid": "cidA"}]), read_only=True)
        with pytest.raises(RegistryError):
            registry.register("cidB")
        assert registry.count() == 1

    def test_writer_repairs_torn_tail(self, temp_dir):
        """Opening for writing drops the torn bytes before the next append."""
        path = temp_dir / "registrations.jsonl"
        AssetRegistry(FileLog(path)).register("cidA")
        with open(path, "ab") as f:
            f.write(b'{"handle": 1, "ci')

        registry = AssetRegistry(FileLog(path))
        assert registry.register("cidB") == 1
        assert [r.cid for r in AssetRegistry(FileLog(path), read_only=True)] == ["cidA", "cidB"]
