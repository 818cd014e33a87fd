import pytest

from assistant_core.domain.exceptions import StoreError
from assistant_core.domain.models import ChatChoice, ChatMessage, ChatResult
from assistant_core.infrastructure.storage.json_store import JsonConversationStore
from assistant_core.infrastructure.storage.workspace_repository import WorkspaceRepository


class ScriptedProvider:
    """按顺序返回预设文本的假 Provider，并记录收到的请求。"""

    name = "fake"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        msg = ChatMessage(role="assistant", content=reply)
        return ChatResult(provider="fake", model=req.model, choices=[ChatChoice(index=0, message=msg)], usage=None, raw={})


class GatewaySettingsStub:
    default_model = "assistant-chat"
    temperature = 0.1
    max_tokens = None


class FakeImageSearch:
    def __init__(self, url=None, error=None):
        self.url = url
        self.error = error
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.url


class FlakyStore(JsonConversationStore):
    """第 fail_on 次追加消息时抛出 StoreError。"""

    def __init__(self, root, fail_on):
        super().__init__(root=root)
        self.fail_on = fail_on
        self.appends = 0

    def append_message(self, message):
        self.appends += 1
        if self.appends == self.fail_on:
            raise StoreError(code="STORE_WRITE_ERROR", message="disk full")
        super().append_message(message)


@pytest.fixture
def repo(tmp_path):
    return WorkspaceRepository.from_url(f"sqlite:///{tmp_path / 'workspace.db'}")


@pytest.fixture
def people(repo):
    alice = repo.create_profile("alice@example.com", "Alice", "Smith", id="u-alice")
    bob = repo.create_profile("bob@example.com", "Bob", "Jones", id="u-bob")
    return alice, bob
