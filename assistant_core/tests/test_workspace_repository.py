import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from assistant_core.domain.exceptions import ExecutionError
from assistant_core.infrastructure.storage.workspace_db import (
    Goal,
    GoalTag,
    KbArticle,
    KbFolder,
    Project,
    ProjectMember,
    ProjectService,
    Tag,
    slugify,
)
from assistant_core.infrastructure.storage.workspace_repository import NewGoal, NewProject, WorkspaceRepository


def test_slugify():
    assert slugify("Spring Launch") == "spring-launch"
    assert slugify("  Food & Beverage!! ") == "food-beverage"
    assert slugify("!!!") == "item"


def test_create_project_with_services_and_members(repo, people):
    alice, bob = people
    project = repo.create_project(
        alice.id,
        NewProject(name="Spring Launch", start_date=date(2024, 3, 1), budget=5000000),
        services=["Venue", "Food & Beverage"],
        member_ids=[bob.id, bob.id, alice.id],
    )
    assert project.slug == "spring-launch"
    assert project.member_ids == [bob.id]

    listed = repo.list_projects_for_user(bob.id, limit=10)
    assert [p.name for p in listed] == ["Spring Launch"]
    assert listed[0].services == ["Venue", "Food & Beverage"]
    assert listed[0].budget == 5000000
    assert listed[0].start_date == date(2024, 3, 1)


def test_duplicate_project_names_get_distinct_slugs(repo, people):
    alice, _ = people
    first = repo.create_project(alice.id, NewProject(name="Gala"))
    second = repo.create_project(alice.id, NewProject(name="Gala"))
    third = repo.create_project(alice.id, NewProject(name="Gala"))
    assert [first.slug, second.slug, third.slug] == ["gala", "gala-2", "gala-3"]
    assert repo.count(Project) == 3


def test_project_write_is_atomic(repo, people):
    alice, _ = people
    with pytest.raises(ExecutionError):
        repo.create_project(alice.id, NewProject(name="Broken"), services=["Venue"], member_ids=["u-ghost"])
    assert repo.count(Project) == 0
    assert repo.count(ProjectService) == 0
    assert repo.count(ProjectMember) == 0


def test_projects_are_scoped_to_owner_or_member(repo, people):
    alice, bob = people
    repo.create_project(alice.id, NewProject(name="Alice Only"))
    repo.create_project(bob.id, NewProject(name="Bob Only"))
    repo.create_project(bob.id, NewProject(name="Shared"), member_ids=[alice.id])
    names = {p.name for p in repo.list_projects_for_user(alice.id, limit=10)}
    assert names == {"Alice Only", "Shared"}
    assert len(repo.list_projects_for_user(alice.id, limit=1)) == 1


def test_task_with_assignees_appears_in_project(repo, people):
    alice, bob = people
    project = repo.create_project(alice.id, NewProject(name="Gala"))
    task = repo.create_task(project.id, "Book venue", alice.id, [bob.id])
    listed = repo.list_projects_for_user(alice.id, limit=10)[0]
    assert [t.title for t in listed.tasks] == ["Book venue"]
    assert listed.tasks[0].assignee_ids == [bob.id]
    assert listed.tasks[0].id == task.id


def test_goal_and_tags_created_together(repo, people):
    alice, _ = people
    goal = repo.create_goal(
        alice.id,
        NewGoal(title="Learn Guitar", type="frequency", specific_days=["Mo", "We"]),
        tags=[("Music", "#4ECDC4"), ("Hobby", None), ("music", None)],
    )
    assert goal.slug == "learn-guitar"
    assert goal.tags == ["Music", "Hobby"]
    assert repo.count(Tag) == 2

    # 同名标签复用
    repo.create_goal(alice.id, NewGoal(title="Practice Scales"), tags=[("Music", None)])
    assert repo.count(Tag) == 2
    assert repo.count(GoalTag) == 3
    assert [g.title for g in repo.list_goals(alice.id)] == ["Learn Guitar", "Practice Scales"]


def test_goal_write_is_atomic(repo):
    with pytest.raises(ExecutionError):
        repo.create_goal("u-ghost", NewGoal(title="Orphan"), tags=[("Solo", None)])
    assert repo.count(Goal) == 0
    assert repo.count(Tag) == 0


def test_ensure_folder_is_idempotent_per_owner_with_global_slugs(repo, people):
    alice, bob = people
    first, created = repo.ensure_folder(alice.id, "Event Playbooks")
    again, created_again = repo.ensure_folder(alice.id, "  event   playbooks ")
    other, other_created = repo.ensure_folder(bob.id, "Event Playbooks")
    assert created and not created_again and other_created
    assert again.id == first.id
    assert other.id != first.id
    assert first.slug == "event-playbooks"
    assert other.slug == "event-playbooks-2"
    assert repo.count(KbFolder) == 2


def test_ensure_folder_defaults_to_uncategorized(repo, people):
    alice, _ = people
    folder, created = repo.ensure_folder(alice.id, None)
    assert created
    assert folder.name == "Uncategorized"
    assert repo.ensure_folder(alice.id, "")[0].id == folder.id


def test_articles_in_same_new_folder_share_one_row(repo, people):
    alice, _ = people
    a1, f1, created1 = repo.create_article(alice.id, "Checklist", "<p>1</p>", "Event Playbooks")
    a2, f2, created2 = repo.create_article(alice.id, "Checklist", "<p>2</p>", "event playbooks")
    assert created1 and not created2
    assert f1.id == f2.id
    assert repo.count(KbFolder) == 1
    assert (a1.slug, a2.slug) == ("checklist", "checklist-2")
    assert [a.folder_id for a in repo.list_articles(alice.id)] == [f1.id, f1.id]


def _run_together(calls):
    """让多个写操作尽量同时开始，返回 (结果, 异常) 列表。"""
    barrier = threading.Barrier(len(calls))

    def _call(fn):
        barrier.wait()
        try:
            return fn(), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(_call, calls))


def test_concurrent_articles_into_same_new_folder(repo, people):
    alice, _ = people
    outcomes = _run_together(
        [lambda i=i: repo.create_article(alice.id, f"Note {i}", None, "Race Folder") for i in range(4)]
    )
    assert [e for _, e in outcomes] == [None] * 4
    assert repo.count(KbFolder) == 1
    assert repo.count(KbArticle) == 4
    assert len({folder.id for (_, folder, _), _ in outcomes}) == 1
    assert sum(created for (_, _, created), _ in outcomes) == 1


def test_concurrent_unrelated_writes_do_not_interfere(repo, people):
    alice, bob = people
    for round_no in range(5):
        outcomes = _run_together(
            [
                lambda: repo.create_project(alice.id, NewProject(name=f"Alpha {round_no}")),
                lambda: repo.create_project(bob.id, NewProject(name=f"Beta {round_no}")),
            ]
        )
        assert [e for _, e in outcomes] == [None, None]
    assert repo.count(Project) == 10


class _StaleLookupRepository(WorkspaceRepository):
    """第一次查找文件夹时看不到已存在的行，模拟另一个写入者抢先插入。"""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.lookups = 0

    def _find_folder(self, session, user_id, key):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return super()._find_folder(session, user_id, key)


def test_folder_insert_conflict_reuses_existing_row(repo, people):
    alice, _ = people
    existing, _ = repo.ensure_folder(alice.id, "Event Playbooks")

    stale = _StaleLookupRepository(repo._session_factory)
    folder, created = stale.ensure_folder(alice.id, "event playbooks")
    assert stale.lookups == 2
    assert not created
    assert folder.id == existing.id
    assert repo.count(KbFolder) == 1
