from pathlib import Path
from uuid import uuid4

from orbit.sm.manager import StateManager


def test_state_manager_persists_state(tmp_path: Path) -> None:
    db = tmp_path / "state.db"
    sm = StateManager(f"sqlite:///{db}")

    sm.save_state({"pending_actions": [{"id": "a1"}]})
    sm.save_state({"pending_actions": [], "stopped_at": "2026-01-01T00:00:00+00:00"})

    reopened = StateManager(f"sqlite:///{db}")
    loaded = reopened.load_state()
    assert loaded["pending_actions"] == []
    assert loaded["stopped_at"].startswith("2026-01-01")


def test_state_manager_profile_methods(tmp_path: Path) -> None:
    sm = StateManager(f"sqlite:///{tmp_path / 'profiles.db'}")

    sm.save_profile("bakery", {"id": "bakery", "name": "Bakery"})
    sm.save_profile("closed", {"id": "closed"}, active=False)
    sm.save_profile("bakery", {"id": "bakery", "name": "Corner Bakery"})

    assert sm.load_profile("bakery") == {"id": "bakery", "name": "Corner Bakery"}
    assert sm.load_profile("missing") is None
    assert sm.list_active_profile_ids() == ["bakery"]


def test_state_manager_memory_methods(tmp_path: Path) -> None:
    sm = StateManager(f"sqlite:///{tmp_path / 'memory.db'}")

    sm.remember_memory(
        memory_id=str(uuid4()),
        content="Lunch promotion raised sales",
        metadata={"type": "insight"},
        business_id="b1",
        kind="insight",
    )
    sm.remember_memory(
        memory_id="m2",
        content="{}",
        metadata={"type": "recommendation"},
        business_id="b1",
        kind="recommendation",
        lookup_key="recommendation:r1",
    )

    assert sm.memory_count() == 2
    assert sm.memory_count("insight") == 1
    assert [row["kind"] for row in sm.search_memories(["lunch"], business_id="b1")] == ["insight"]
    assert sm.search_memories(["lunch"], business_id="b2") == []
    found = sm.find_memory_by_key("recommendation:r1")
    assert found is not None
    assert found["memory_id"] == "m2"
    assert found["metadata"] == {"type": "recommendation"}


def test_state_manager_learning_and_kv_methods(tmp_path: Path) -> None:
    sm = StateManager(f"sqlite:///{tmp_path / 'learning.db'}")

    for index in range(3):
        sm.remember_learning_event(
            event_id=f"e{index}",
            event_type="action_result",
            business_id="b1",
            data={"index": index},
            outcome="completed",
        )

    recent = sm.get_recent_learning_events(2, business_id="b1")
    assert len(recent) == 2
    assert recent[-1]["outcome"] == "completed"
    assert sm.get_recent_learning_events(10, business_id="other") == []

    sm.kv_set_json("conversations", "b1:+1", [{"role": "user", "content": "hi"}])
    sm.kv_set_json("conversations", "b2:+2", [])
    assert sm.kv_get_json("conversations", "b1:+1") == [{"role": "user", "content": "hi"}]
    assert [key for key, _ in sm.kv_list_prefix("conversations", "")] == ["b1:+1", "b2:+2"]
    assert sm.kv_delete_prefix("conversations", "b1:") == 1
    assert sm.kv_get_json("conversations", "b1:+1") is None
