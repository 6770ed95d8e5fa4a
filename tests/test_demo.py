"""Tests for the sample project used by ``td-monitor demo``."""

from td_monitor.demo import AGENT_SESSION, DEMO_ISSUES, DEMO_SESSION, seed_demo_store
from td_monitor.effects import DataLoaded, EffectRunner, FetchData
from td_monitor.models import Category
from td_monitor.store import MemoryStore


def _seeded() -> tuple[MemoryStore, dict[str, str]]:
    store = MemoryStore()
    return store, seed_demo_store(store)


def test_seeds_every_issue():
    store, ids = _seeded()
    assert set(ids) == {row[0] for row in DEMO_ISSUES}
    assert len(store.list_issues()) == len(DEMO_ISSUES)


def test_epic_has_tasks():
    store, ids = _seeded()
    details = store.get_issue_details(ids["epic"])
    assert {i.id for i in details.epic_tasks} == {ids[k] for k in ("queue", "conflict", "retry", "banner")}


def test_links_and_handoff():
    store, ids = _seeded()
    assert store.get_dependencies(ids["banner"]) == [ids["queue"]]
    assert store.get_issue_details(ids["conflict"]).handoff.session_id == AGENT_SESSION
    assert store.focused_issue(DEMO_SESSION).id == ids["queue"]
    assert [b.name for b in store.list_boards()][-1] == "Bugs"
    assert store.get_issue_details(ids["retry"]).comments[0].session_id != DEMO_SESSION


def test_panels_from_demo_session():
    store, ids = _seeded()
    result = EffectRunner(store).run(FetchData(session_id=DEMO_SESSION))
    assert isinstance(result, DataLoaded)
    assert result.focused.id == ids["queue"]
    task_list = result.task_list
    assert ids["conflict"] in [i.id for i in task_list.bucket(Category.REVIEWABLE)]
    assert ids["retry"] in [i.id for i in task_list.bucket(Category.NEEDS_REWORK)]
    assert ids["banner"] in [i.id for i in task_list.bucket(Category.BLOCKED)]
    assert ids["crash"] in [i.id for i in task_list.bucket(Category.READY)]
