from assistant_core.assistant.resolver import EntityResolver
from assistant_core.domain.workspace import (
    ArticleRecord,
    ContextSnapshot,
    FolderRecord,
    GoalRecord,
    ProjectRecord,
    TaskRecord,
    UserProfile,
)

ALICE = UserProfile(id="u-alice", first_name="Alice", last_name="Smith", email="alice@example.com")
BOB = UserProfile(id="u-bob", first_name="Bob", last_name="Jones", email="bob@example.com")
NONAME = UserProfile(id="u-x", first_name=None, last_name=None, email="x@example.com")


def _snapshot():
    project = ProjectRecord(
        id="p1",
        name="Spring Launch",
        slug="spring-launch",
        created_by="u-alice",
        tasks=[TaskRecord(id="t1", project_id="p1", title="Book venue")],
    )
    return ContextSnapshot(
        user=ALICE,
        projects=[project],
        users=[ALICE, BOB, NONAME],
        goals=[GoalRecord(id="g1", title="Run 5k", slug="run-5k", user_id="u-alice")],
        articles=[ArticleRecord(id="a1", title="Gala  Checklist", slug="gala-checklist", user_id="u-alice")],
        folders=[
            FolderRecord(id="f1", name="Playbooks", slug="playbooks", user_id="u-alice"),
            FolderRecord(id="f2", name="Uncategorized", slug="uncategorized", user_id="u-alice"),
            FolderRecord(id="f3", name="Bob Folder", slug="bob-folder", user_id="u-bob"),
        ],
    )


def test_user_by_full_name_or_email_case_insensitive():
    r = EntityResolver(_snapshot())
    assert r.user("bob jones").resolved_id == "u-bob"
    assert r.user("BOB@EXAMPLE.COM").resolved_id == "u-bob"
    assert r.user("x@example.com").resolved_id == "u-x"
    ref = r.user("Bob")
    assert ref.raw_text == "Bob"
    assert ref.resolved_id is None
    assert not ref.found


def test_users_batch_dedupes_and_reports_unresolved():
    ids, unresolved = EntityResolver(_snapshot()).users(["Bob Jones", "bob@example.com", "Carol", ""])
    assert ids == ["u-bob"]
    assert unresolved == ["Carol"]


def test_project_exact_match_only():
    r = EntityResolver(_snapshot())
    assert r.project("spring launch").resolved_id == "p1"
    assert r.project("Spring").resolved_id is None
    assert r.find_project("") is None
    assert r.find_task(r.find_project("Spring Launch"), "book VENUE").id == "t1"


def test_folder_scoped_to_acting_user_with_uncategorized_default():
    r = EntityResolver(_snapshot())
    assert r.folder("playbooks").resolved_id == "f1"
    assert r.folder(None).resolved_id == "f2"
    assert r.folder(None).raw_text == "Uncategorized"
    assert r.folder("Bob Folder").resolved_id is None


def test_goal_and_article_lookup_normalizes_whitespace():
    r = EntityResolver(_snapshot())
    assert r.find_goal("run 5K").id == "g1"
    assert r.find_article("gala checklist").id == "a1"
    assert r.find_goal("Run") is None
    assert r.find_article(None) is None
