import pytest

from conftest import FakeImageSearch

from assistant_core.actions.executor import DISPATCH, ActionExecutor, check_dispatch
from assistant_core.assistant.context_builder import ContextBuilder
from assistant_core.domain.actions import ActionKind, FailureKind, ViewKey, parse_action
from assistant_core.domain.exceptions import ExecutionError
from assistant_core.infrastructure.storage.workspace_db import KbArticle, KbFolder, Project, Task
from assistant_core.infrastructure.storage.workspace_repository import NewProject


def _run(repo, user_id, data, confirmed=False, image_search=None):
    snapshot = ContextBuilder(repo).build(user_id)
    return ActionExecutor(repo, image_search).execute(parse_action(data), snapshot, user_id, confirmed=confirmed)


def test_dispatch_table_is_exhaustive():
    assert set(DISPATCH) == set(ActionKind)
    with pytest.raises(RuntimeError):
        check_dispatch({})
    partial = dict(DISPATCH)
    partial.pop(ActionKind.DELETE_ARTICLE)
    with pytest.raises(RuntimeError):
        ActionExecutor(repository=None, dispatch=partial)


def test_create_project_message_and_link(repo, people):
    alice, _ = people
    res = _run(repo, alice.id, {
        "action": "CREATE_PROJECT",
        "project_details": {"name": "Spring Launch", "start_date": "2024-03-01", "budget": 5000000},
    })
    assert res.ok
    assert res.message == 'Done! I\'ve created the project "Spring Launch". You can view it [here](/projects/spring-launch).'
    assert res.deep_link == "/projects/spring-launch"
    assert res.affected == (ViewKey.PROJECTS, ViewKey.PROJECT)
    assert repo.count(Project) == 1


def test_duplicate_project_names_link_to_distinct_slugs(repo, people):
    alice, _ = people
    data = {"action": "CREATE_PROJECT", "project_details": {"name": "Gala"}}
    first = _run(repo, alice.id, data)
    second = _run(repo, alice.id, data)
    assert first.deep_link == "/projects/gala"
    assert second.deep_link == "/projects/gala-2"


def test_project_with_unknown_members(repo, people):
    alice, bob = people
    res = _run(repo, alice.id, {
        "action": "CREATE_PROJECT",
        "project_details": {"name": "Gala", "members": ["Bob Jones", "Carol"]},
    })
    assert res.ok
    assert 'but I couldn\'t find "Carol" to add as members' in res.message
    assert repo.list_projects_for_user(bob.id, limit=10)[0].name == "Gala"

    res = _run(repo, alice.id, {
        "action": "CREATE_PROJECT",
        "project_details": {"name": "Gala Dinner", "members": ["Carol"]},
    })
    assert "but I couldn't find the users to add as members" in res.message


def test_project_without_name_writes_nothing(repo, people):
    alice, _ = people
    res = _run(repo, alice.id, {"action": "CREATE_PROJECT", "project_details": {"budget": 10}})
    assert res.failure is FailureKind.INVALID_REQUEST
    assert res.message == "I need a name to create a project."
    assert repo.count(Project) == 0


def test_task_in_missing_project(repo, people):
    alice, _ = people
    data = {"action": "CREATE_TASK", "project_name": "Spring Launch", "task_title": "Book venue"}
    for confirmed in (False, True):
        res = _run(repo, alice.id, data, confirmed=confirmed)
        assert res.failure is FailureKind.NOT_FOUND
        assert res.message == 'I couldn\'t find a project named "Spring Launch".'
    assert repo.count(Task) == 0


def test_task_is_proposed_before_confirmation(repo, people):
    alice, _ = people
    repo.create_project(alice.id, NewProject(name="Spring Launch"))
    data = {
        "action": "CREATE_TASK",
        "project_name": "spring launch",
        "task_title": "Book venue",
        "assignees": ["Bob Jones", "Carol"],
    }

    proposal = _run(repo, alice.id, data)
    assert proposal.ok
    assert proposal.pending_action is not None
    assert proposal.pending_action.kind is ActionKind.CREATE_TASK
    assert proposal.message == (
        'I can create the task "Book venue" in the "Spring Launch" project and assign it to "Bob Jones". '
        'I couldn\'t find "Carol", so they won\'t be assigned. Should I go ahead?'
    )
    assert proposal.affected == ()
    assert repo.count(Task) == 0

    done = _run(repo, alice.id, data, confirmed=True)
    assert done.ok
    assert done.pending_action is None
    assert repo.count(Task) == 1
    task = repo.list_projects_for_user(alice.id, limit=10)[0].tasks[0]
    assert task.assignee_ids == ["u-bob"]
    assert done.deep_link == f"/projects/spring-launch/tasks/{task.id}"
    assert done.message.startswith('Done! I\'ve created the task "Book venue" in the "Spring Launch" project')
    assert set(done.affected) == {ViewKey.TASKS, ViewKey.PROJECT, ViewKey.PROJECTS}


def test_create_goal_with_tags(repo, people):
    alice, _ = people
    res = _run(repo, alice.id, {
        "action": "CREATE_GOAL",
        "goal_details": {"title": "Learn Guitar", "type": "frequency", "tags": ["Music", {"name": "Hobby", "color": "#4ECDC4"}]},
    })
    assert res.ok
    assert res.deep_link == "/goals/learn-guitar"
    assert res.affected == (ViewKey.GOALS, ViewKey.GOAL)
    assert repo.list_goals(alice.id)[0].tags == ["Music", "Hobby"]

    res = _run(repo, alice.id, {"action": "CREATE_GOAL", "goal_details": {}})
    assert res.message == "To create a goal, I need at least a title."


def test_article_survives_image_search_failure(repo, people):
    alice, _ = people
    images = FakeImageSearch(error=RuntimeError("unsplash down"))
    res = _run(
        repo,
        alice.id,
        {
            "action": "CREATE_ARTICLE",
            "article_details": {
                "title": "Gala Checklist",
                "content": "<p>Steps</p>",
                "folder_name": "Event Playbooks",
                "header_image_search_query": "gala dinner",
            },
        },
        image_search=images,
    )
    assert res.ok
    assert images.queries == ["gala dinner"]
    assert 'in the "Event Playbooks" folder but I couldn\'t find a header image for it.' in res.message
    assert res.deep_link == "/knowledge-base/pages/gala-checklist"
    assert ViewKey.KB_FOLDERS in res.affected
    assert repo.count(KbArticle) == 1


def test_article_reuses_existing_folder(repo, people):
    alice, _ = people
    images = FakeImageSearch(url="https://images.example/1.jpg")
    data = {"action": "CREATE_ARTICLE", "article_details": {"title": "Notes", "header_image_search_query": "notes"}}
    first = _run(repo, alice.id, data, image_search=images)
    second = _run(repo, alice.id, data, image_search=images)
    assert 'in the "Uncategorized" folder.' in first.message
    assert ViewKey.KB_FOLDERS in first.affected
    assert ViewKey.KB_FOLDERS not in second.affected
    assert repo.count(KbFolder) == 1
    assert repo.list_articles(alice.id)[0].header_image_url == "https://images.example/1.jpg"


def test_create_folder_is_idempotent(repo, people):
    alice, _ = people
    data = {"action": "CREATE_FOLDER", "folder_details": {"name": "Event Playbooks", "icon": "BookOpen"}}
    first = _run(repo, alice.id, data)
    second = _run(repo, alice.id, data)
    assert first.affected == (ViewKey.KB_FOLDERS,)
    assert second.ok and second.affected == ()
    assert second.message.startswith('You already have a folder named "Event Playbooks".')
    assert repo.count(KbFolder) == 1


@pytest.mark.parametrize(
    "data",
    [
        {"action": "UPDATE_PROJECT", "project_name": "Gala", "updates": {"status": "Done"}},
        {"action": "ASSIGN_TASK", "project_name": "Gala", "task_title": "x", "assignees": ["Bob"]},
        {"action": "UNASSIGN_TASK", "project_name": "Gala", "task_title": "x", "assignees": ["Bob"]},
        {"action": "UPDATE_GOAL", "goal_title": "Run"},
        {"action": "UPDATE_ARTICLE", "article_title": "Notes"},
        {"action": "DELETE_ARTICLE", "article_title": "Notes"},
    ],
)
def test_unimplemented_kinds_report_not_supported(repo, people, data):
    alice, _ = people
    res = _run(repo, alice.id, data)
    assert res.failure is FailureKind.NOT_SUPPORTED
    assert res.message == f"I can't perform that action yet ({data['action']} is not supported)."


def test_write_failure_is_reported_with_database_reason(repo, people):
    alice, _ = people

    class FailingRepo:
        def create_project(self, *args, **kwargs):
            raise ExecutionError(code="DB_WRITE_ERROR", message="disk I/O error", entity="project")

    snapshot = ContextBuilder(repo).build(alice.id)
    res = ActionExecutor(FailingRepo()).execute(
        parse_action({"action": "CREATE_PROJECT", "project_details": {"name": "Gala"}}),
        snapshot,
        alice.id,
    )
    assert res.failure is FailureKind.EXECUTION_ERROR
    assert res.message == "I failed to create the project. The database said: disk I/O error"
    assert res.affected == ()
