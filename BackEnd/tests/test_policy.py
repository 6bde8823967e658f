"""
Unit tests for the authorization rule table
"""
from types import SimpleNamespace

import pytest

from sisinvestiga.core.exceptions import ForbiddenError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation, Rule, build_role_table

ADMIN = 'Administrador'
INVESTIGATOR = 'Investigador'


def project_with(*member_ids):
    return SimpleNamespace(has_investigator=lambda user_id: user_id in member_ids)


class TestRoleTable:

    def test_table_is_read_only(self):
        table = build_role_table()
        with pytest.raises(TypeError):
            table[Operation.project_update] = Rule()

    def test_every_operation_has_a_rule(self):
        table = build_role_table()
        assert set(table) == set(Operation)


class TestCanPerform:

    def test_admin_bypasses_project_membership(self, policy):
        assert policy.can_perform(ADMIN, 1, Operation.project_update, project_with(2, 3))

    def test_member_can_update_project(self, policy):
        assert policy.can_perform(INVESTIGATOR, 2, Operation.project_update, project_with(2, 3))

    def test_non_member_cannot_update_project(self, policy):
        assert not policy.can_perform(INVESTIGATOR, 9, Operation.project_update, project_with(2, 3))

    def test_only_admin_deletes_closed_projects(self, policy):
        assert policy.can_perform(ADMIN, 1, Operation.project_delete_closed)
        assert not policy.can_perform(INVESTIGATOR, 2, Operation.project_delete_closed)

    def test_evaluation_update_requires_admin_and_authorship(self, policy):
        evaluation = SimpleNamespace(evaluator_id=5)

        assert policy.can_perform(ADMIN, 5, Operation.evaluation_update, evaluation)
        assert not policy.can_perform(ADMIN, 6, Operation.evaluation_update, evaluation)
        assert not policy.can_perform(INVESTIGATOR, 5, Operation.evaluation_update, evaluation)

    def test_request_owner_can_view_own_request(self, policy):
        request = SimpleNamespace(solicitante_id=4)

        assert policy.can_perform(INVESTIGATOR, 4, Operation.request_view, request)
        assert not policy.can_perform(INVESTIGATOR, 8, Operation.request_view, request)
        assert policy.can_perform(ADMIN, 8, Operation.request_view, request)

    def test_unknown_role_gets_no_permissions(self, policy):
        assert not policy.can_perform('Invitado', 1, Operation.project_create)
        assert not policy.can_perform('Invitado', 1, Operation.report_own)

    def test_injected_table_replaces_defaults(self):
        policy = AuthorizationPolicy({Operation.project_create: Rule(bypass_roles=frozenset())})
        assert not policy.can_perform(ADMIN, 1, Operation.project_create)
        assert not policy.can_perform(ADMIN, 1, Operation.user_manage)


class TestAuthorize:

    def test_raises_forbidden_with_rule_message(self, policy):
        actor = SimpleNamespace(id=9, role_name=INVESTIGATOR)

        with pytest.raises(ForbiddenError) as exc:
            policy.authorize(actor, Operation.project_update, project_with(1))

        assert exc.value.message == 'No tienes permisos para actualizar este proyecto'
        assert exc.value.status_code == 403

    def test_custom_message_overrides_rule(self, policy):
        actor = SimpleNamespace(id=9, role_name=INVESTIGATOR)

        with pytest.raises(ForbiddenError) as exc:
            policy.authorize(actor, Operation.user_manage, message='Solo administración')

        assert exc.value.message == 'Solo administración'

    def test_allowed_actor_passes_silently(self, policy):
        actor = SimpleNamespace(id=1, role_name=ADMIN)
        assert policy.authorize(actor, Operation.role_manage) is None
