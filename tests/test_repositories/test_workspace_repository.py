"""
Tests for WorkspaceRepository and the secondary repositories that
reference workspaces, agents and memories.
"""

from chatledger.db.store import Store
from chatledger.models.db import Memory


class TestWorkspaces:
    def test_get_or_create_is_keyed_by_path_and_provider(self, store: Store):
        first, created = store.run(
            lambda uow: uow.workspaces.get_or_create("/home/dev/api", provider="codex")
        )
        again, created_again = store.run(
            lambda uow: uow.workspaces.get_or_create("/home/dev/api", provider="codex")
        )
        other, created_other = store.run(
            lambda uow: uow.workspaces.get_or_create("/home/dev/api", provider="claude")
        )

        assert (created, created_again, created_other) == (True, False, True)
        assert again.id == first.id
        assert other.id != first.id
        assert first.name == "api"

    def test_update_publishes_only_real_changes(self, store: Store):
        workspace, _ = store.run(
            lambda uow: uow.workspaces.get_or_create("/srv/app", name="App")
        )
        before = store.sync.current_version()

        store.run(lambda uow: uow.workspaces.update(workspace.id, name="App"))
        assert store.sync.current_version() == before

        store.run(
            lambda uow: uow.workspaces.update(workspace.id, git_branch="release")
        )
        events = store.read(lambda uow: uow.events.since(before))
        assert [e.event_type for e in events] == ["workspace.updated"]
        assert events[0].data["git_branch"] == "release"

    def test_delete_keeps_sessions_and_clears_reference(self, store: Store):
        def _seed(uow):
            workspace, _ = uow.workspaces.get_or_create("/srv/app")
            chat_session = uow.sessions.create(
                provider="codex", title="in workspace", workspace_id=workspace.id
            )
            uow.memories.create(content="remember", workspace_id=workspace.id)
            return workspace.id, chat_session.id

        workspace_id, session_id = store.run(_seed)
        before = store.sync.current_version()

        store.run(lambda uow: uow.workspaces.delete(workspace_id))

        chat_session = store.read(lambda uow: uow.sessions.get(session_id))
        memory = store.read(lambda uow: uow.session.query(Memory).one())
        events = store.read(lambda uow: uow.events.since(before))
        assert chat_session.workspace_id is None
        assert memory.workspace_id is None
        assert [e.event_type for e in events] == [
            "session.updated",
            "workspace.deleted",
        ]


class TestAgentsAndMemories:
    def test_agent_delete_detaches_sessions(self, store: Store):
        def _seed(uow):
            agent = uow.agents.create(name="reviewer", instruction="Review code")
            chat_session = uow.sessions.create(
                provider="codex", title="review", agent_id=agent.id
            )
            uow.memories.create(content="prefers small diffs", agent_id=agent.id)
            uow.tags.tag("agent", agent.id, "code")
            return agent.id, chat_session.id

        agent_id, session_id = store.run(_seed)

        assert store.run(lambda uow: uow.agents.delete(agent_id)) is True

        chat_session = store.read(lambda uow: uow.sessions.get(session_id))
        memory = store.read(lambda uow: uow.session.query(Memory).one())
        assert chat_session.agent_id is None
        assert memory.agent_id is None

    def test_memory_content_is_searchable(self, store: Store):
        memory_id = store.run(
            lambda uow: uow.memories.create(content="The user deploys on Fridays").id
        )

        hits = store.read(lambda uow: uow.search.search("memory", "Fridays"))
        assert [entity_id for entity_id, _ in hits] == [str(memory_id)]

        store.run(
            lambda uow: uow.memories.update_content(
                uow.memories.get(memory_id), "The user deploys on Mondays"
            )
        )
        assert store.read(lambda uow: uow.search.search("memory", "Fridays")) == []

        store.run(lambda uow: uow.memories.delete(memory_id))
        assert store.read(lambda uow: uow.search.count("memory")) == 0

    def test_tagging_is_idempotent(self, store: Store, sample_session_id):
        assert store.run(lambda uow: uow.tags.tag("session", sample_session_id, "py"))
        assert not store.run(
            lambda uow: uow.tags.tag("session", sample_session_id, "py")
        )
        tags = store.read(lambda uow: uow.tags.tags_for("session", sample_session_id))
        assert tags == ["py"]

    def test_untag(self, store: Store, sample_session_id):
        store.run(lambda uow: uow.tags.tag("session", sample_session_id, "py"))

        assert store.run(lambda uow: uow.tags.untag("session", sample_session_id, "py"))
        assert not store.run(
            lambda uow: uow.tags.untag("session", sample_session_id, "missing")
        )
        tags = store.read(lambda uow: uow.tags.tags_for("session", sample_session_id))
        assert tags == []

    def test_memories_by_agent_and_access(self, store: Store):
        def _seed(uow):
            agent = uow.agents.create(name="planner", instruction="Plan work")
            uow.memories.create(content="low", agent_id=agent.id, importance=0.1)
            uow.memories.create(content="high", agent_id=agent.id, importance=0.9)
            return agent.id

        agent_id = store.run(_seed)

        def _touch_first(uow):
            first = uow.memories.list_for_agent(agent_id)[0]
            uow.memories.touch(first)
            return first.content, first.access_count, first.last_accessed

        content, access_count, last_accessed = store.run(_touch_first)
        assert content == "high"
        assert access_count == 1
        assert last_accessed is not None

    def test_list_workspaces_pages(self, store: Store):
        def _seed(uow):
            for path in ("/a", "/b", "/c"):
                uow.workspaces.get_or_create(path)

        store.run(_seed)

        first_page = store.read(lambda uow: uow.workspaces.list_workspaces(limit=2))
        rest = store.read(lambda uow: uow.workspaces.list_workspaces(offset=2))
        names = [w.name for w in first_page + rest]
        assert len(first_page) == 2
        assert sorted(names) == ["a", "b", "c"]
