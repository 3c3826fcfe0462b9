"""
Tests for ChainDefinitionService (authoring against the store).

Tests cover:
- Create with scope and key uniqueness per scope
- Links: append, insert at position, dense renumbering, removal
- GoToLink targets validated against the chain
- Publish / unpublish rules
- Delete blocked once executions exist
- Editing a published chain does not affect running executions
"""

import pytest

from conftest import build_chain
from skillchain.chains.definitions import LinkSpec
from skillchain.chains.models import FailureTransition, SuccessTransition
from skillchain.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError


# =============================================================================
# Chains
# =============================================================================


class TestCreateChain:
    def test_create_defaults(self, definitions):
        chain = definitions.create_chain("flow", "Flow", organization_id="org-1")

        assert chain.id
        assert chain.scope == "organization"
        assert chain.is_published is False
        assert chain.links == []
        assert chain.max_total_failures == 5

    def test_key_unique_within_scope(self, definitions):
        definitions.create_chain("flow", "Flow", project_id="proj-1")
        with pytest.raises(InvalidArgumentError, match="already exists"):
            definitions.create_chain("flow", "Flow again", project_id="proj-1")

    def test_same_key_in_other_scope_allowed(self, definitions):
        definitions.create_chain("flow", "Flow", project_id="proj-1")
        other = definitions.create_chain("flow", "Flow", project_id="proj-2")
        org = definitions.create_chain("flow", "Flow", organization_id="proj-1")
        assert other.id != org.id

    def test_scope_required(self, definitions):
        with pytest.raises(InvalidArgumentError):
            definitions.create_chain("flow", "Flow")

    def test_get_unknown(self, definitions):
        with pytest.raises(NotFoundError):
            definitions.get_chain("missing")

    def test_get_by_key_prefers_project(self, definitions):
        definitions.create_chain("flow", "Org flow", organization_id="org-1")
        definitions.create_chain("flow", "Project flow", project_id="proj-1")

        found = definitions.get_chain_by_key("flow", project_id="proj-1", organization_id="org-1")
        assert found.name == "Project flow"
        fallback = definitions.get_chain_by_key("flow", project_id="proj-9", organization_id="org-1")
        assert fallback.name == "Org flow"

    def test_update_fields(self, definitions):
        chain = definitions.create_chain("flow", "Flow", project_id="proj-1")
        updated = definitions.update_chain(
            chain.id, name="Renamed", max_total_failures=2, updated_by="editor"
        )
        assert updated.name == "Renamed"
        assert updated.max_total_failures == 2
        assert updated.updated_by == "editor"

    def test_list_filters(self, definitions):
        build_chain(definitions, LinkSpec(name="A", skill_id="s"), chain_key="one")
        build_chain(definitions, LinkSpec(name="A", skill_id="s"), chain_key="two", publish=False)
        definitions.create_chain("three", "Three", organization_id="org-1")

        assert [c.chain_key for c in definitions.list_chains(project_id="proj-1")] == ["one", "two"]
        assert [c.chain_key for c in definitions.list_chains(published_only=True)] == ["one"]
        assert len(definitions.list_chains()) == 3


# =============================================================================
# Links
# =============================================================================


class TestLinks:
    def _chain(self, definitions):
        return definitions.create_chain("flow", "Flow", project_id="proj-1")

    def test_append_assigns_positions(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        b = definitions.add_link(chain.id, LinkSpec(name="B", skill_id="s"))

        assert (a.position, b.position) == (1, 2)
        assert a.max_retries == 3

    def test_insert_shifts_later_links(self, definitions):
        chain = self._chain(definitions)
        definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        definitions.add_link(chain.id, LinkSpec(name="C", skill_id="s"))
        definitions.add_link(chain.id, LinkSpec(name="B", skill_id="s", position=2))

        links = definitions.get_chain(chain.id).links
        assert [(link.name, link.position) for link in links] == [("A", 1), ("B", 2), ("C", 3)]

    def test_position_out_of_range(self, definitions):
        chain = self._chain(definitions)
        with pytest.raises(InvalidArgumentError):
            definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s", position=3))

    def test_camel_case_transitions_accepted(self, definitions):
        chain = self._chain(definitions)
        link = definitions.add_link(
            chain.id,
            LinkSpec(name="A", skill_id="s", on_success_transition="Complete", on_failure_transition="Escalate"),
        )
        assert link.on_success_transition == SuccessTransition.COMPLETE
        assert link.on_failure_transition == FailureTransition.ESCALATE

    def test_go_to_link_target_must_exist(self, definitions):
        chain = self._chain(definitions)
        with pytest.raises(InvalidArgumentError):
            definitions.add_link(
                chain.id,
                LinkSpec(
                    name="A",
                    skill_id="s",
                    on_failure_transition=FailureTransition.GO_TO_LINK,
                    on_failure_target_link_id="nope",
                ),
            )
        assert definitions.get_chain(chain.id).links == []

    def test_go_to_link_into_other_chain_rejected(self, definitions):
        chain = self._chain(definitions)
        other = definitions.create_chain("other", "Other", project_id="proj-1")
        foreign = definitions.add_link(other.id, LinkSpec(name="X", skill_id="s"))
        with pytest.raises(InvalidArgumentError, match="does not belong"):
            definitions.add_link(
                chain.id,
                LinkSpec(
                    name="A",
                    skill_id="s",
                    on_success_transition="go_to_link",
                    on_success_target_link_id=foreign.id,
                ),
            )

    def test_update_link_switching_away_clears_target(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        b = definitions.add_link(
            chain.id,
            LinkSpec(name="B", skill_id="s", on_failure_transition="go_to_link", on_failure_target_link_id=a.id),
        )
        updated = definitions.update_link(b.id, on_failure_transition="retry", max_retries=5)

        assert updated.on_failure_transition == FailureTransition.RETRY
        assert updated.on_failure_target_link_id is None
        assert updated.max_retries == 5

    def test_update_link_clears_optional_fields(self, definitions):
        chain = self._chain(definitions)
        link = definitions.add_link(
            chain.id,
            LinkSpec(name="A", skill_id="s", agent_id="agent-1", description="first pass"),
        )

        renamed = definitions.update_link(link.id, name="A2")
        assert renamed.agent_id == "agent-1"
        assert renamed.description == "first pass"

        cleared = definitions.update_link(link.id, agent_id=None, description=None)
        assert cleared.agent_id is None
        assert cleared.description is None
        assert cleared.name == "A2"

    def test_update_link_cannot_clear_target_of_go_to_link(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        b = definitions.add_link(
            chain.id,
            LinkSpec(name="B", skill_id="s", on_failure_transition="go_to_link", on_failure_target_link_id=a.id),
        )
        with pytest.raises(InvalidArgumentError):
            definitions.update_link(b.id, on_failure_target_link_id=None)

    def test_remove_closes_gap(self, definitions):
        chain = self._chain(definitions)
        definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        b = definitions.add_link(chain.id, LinkSpec(name="B", skill_id="s"))
        definitions.add_link(chain.id, LinkSpec(name="C", skill_id="s"))

        definitions.remove_link(b.id)

        links = definitions.get_chain(chain.id).links
        assert [(link.name, link.position) for link in links] == [("A", 1), ("C", 2)]

    def test_remove_referenced_link_rejected(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        definitions.add_link(
            chain.id,
            LinkSpec(name="B", skill_id="s", on_success_transition="go_to_link", on_success_target_link_id=a.id),
        )
        with pytest.raises(InvalidArgumentError, match="'B'"):
            definitions.remove_link(a.id)

    def test_reorder(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        b = definitions.add_link(chain.id, LinkSpec(name="B", skill_id="s"))
        c = definitions.add_link(chain.id, LinkSpec(name="C", skill_id="s"))

        reordered = definitions.reorder_links(chain.id, [c.id, a.id, b.id])
        assert [link.name for link in reordered.links] == ["C", "A", "B"]
        assert [link.position for link in reordered.links] == [1, 2, 3]

    def test_reorder_requires_every_link(self, definitions):
        chain = self._chain(definitions)
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        definitions.add_link(chain.id, LinkSpec(name="B", skill_id="s"))
        with pytest.raises(InvalidArgumentError):
            definitions.reorder_links(chain.id, [a.id])


# =============================================================================
# Publish / delete
# =============================================================================


class TestPublishAndDelete:
    def test_publish_without_links_rejected(self, definitions):
        chain = definitions.create_chain("flow", "Flow", project_id="proj-1")
        with pytest.raises(InvalidStateError):
            definitions.publish_chain(chain.id)

    def test_publish_and_unpublish(self, definitions):
        chain = build_chain(definitions, LinkSpec(name="A", skill_id="s"))
        assert chain.is_published is True
        assert definitions.unpublish_chain(chain.id).is_published is False

    def test_delete_unused_chain(self, definitions):
        chain = build_chain(definitions, LinkSpec(name="A", skill_id="s"))
        definitions.delete_chain(chain.id)
        with pytest.raises(NotFoundError):
            definitions.get_chain(chain.id)

    def test_delete_with_executions_rejected(self, definitions, controller, two_link_chain):
        controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError):
            definitions.delete_chain(two_link_chain.id)

    def test_edits_do_not_affect_running_execution(self, definitions, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        plan, build = two_link_chain.links
        definitions.update_link(plan.id, on_success_transition="complete")

        controller.record_link_outcome(run.id, plan.id, "success")
        advanced = controller.advance_execution(run.id)

        assert advanced.current_link_id == build.id
        assert advanced.status.value == "running"
