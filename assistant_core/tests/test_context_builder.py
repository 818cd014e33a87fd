import pytest

from assistant_core.assistant.context_builder import ContextBuilder
from assistant_core.domain.exceptions import ContextBuildError
from assistant_core.domain.workspace import ICON_CATALOG, SERVICE_CATALOG
from assistant_core.infrastructure.storage.workspace_repository import NewGoal, NewProject


def _seed(repo, alice, bob):
    project = repo.create_project(
        alice.id,
        NewProject(name="Spring Launch", description="x" * 150),
        services=["Venue"],
        member_ids=[bob.id],
    )
    repo.create_task(project.id, "Book venue", alice.id, [bob.id])
    repo.create_project(bob.id, NewProject(name="Bob Private"))
    repo.create_goal(alice.id, NewGoal(title="Run 5k", type="frequency"), tags=[("Health", "#FF6B6B")])
    repo.create_goal(bob.id, NewGoal(title="Bob Goal"))
    repo.create_article(alice.id, "Checklist", "<p/>", "Playbooks")
    repo.create_article(bob.id, "Bob Notes", "<p/>", None)


def test_snapshot_summaries(repo, people):
    alice, bob = people
    _seed(repo, alice, bob)
    snap = ContextBuilder(repo).build(alice.id)

    assert snap.user.display_name == "Alice Smith"
    assert [p.name for p in snap.projects] == ["Spring Launch"]
    assert [g.title for g in snap.goals] == ["Run 5k"]
    assert [a.title for a in snap.articles] == ["Checklist"]
    assert [f.name for f in snap.folders] == ["Playbooks"]
    # 人员目录与标签为全局
    assert {u["name"] for u in snap.user_list} == {"Alice Smith", "Bob Jones"}
    assert [t.name for t in snap.tags] == ["Health"]
    assert snap.service_catalog == SERVICE_CATALOG
    assert snap.icon_catalog == ICON_CATALOG

    [project] = snap.summarized_projects
    assert project["name"] == "Spring Launch"
    assert project["status"] == "Requested"
    assert project["description"] == "x" * 100 + "..."
    assert project["tasks"] == [{"title": "Book venue", "completed": False, "assignedTo": ["Bob Jones"]}]
    assert snap.summarized_goals == [{"title": "Run 5k", "type": "frequency", "tags": ["Health"]}]
    assert snap.summarized_articles == [{"title": "Checklist", "folder": "Playbooks"}]
    assert snap.summarized_folders == ["Playbooks"]


def test_summaries_only_use_snapshot_fields(repo, people):
    alice, bob = people
    _seed(repo, alice, bob)
    snap = ContextBuilder(repo).build(alice.id)
    names = {p.name for p in snap.projects}
    assert {p["name"] for p in snap.summarized_projects} <= names
    titles = {g.title for g in snap.goals}
    assert {g["title"] for g in snap.summarized_goals} <= titles


def test_unknown_user_still_builds(repo):
    snap = ContextBuilder(repo).build("u-nobody")
    assert snap.user.display_name == "u-nobody"
    assert snap.projects == []


def test_any_failed_read_aborts_the_build(repo, people):
    alice, _ = people

    class BrokenGoals:
        def __init__(self, inner):
            self._inner = inner

        def __getattr__(self, name):
            return getattr(self._inner, name)

        def list_goals(self, user_id):
            raise RuntimeError("goals table unavailable")

    with pytest.raises(ContextBuildError) as info:
        ContextBuilder(BrokenGoals(repo)).build(alice.id)
    assert info.value.message == "Failed to fetch goals: goals table unavailable"
