"""
Project lifecycle tests: uniqueness, milestones, deletion gate, restore
"""
import pytest

from sisinvestiga.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from sisinvestiga.enums.enums import ProjectStatus
from sisinvestiga.schemas.project_schemas import ProjectCreate, ProjectOut
from sisinvestiga.services.project_service import ProjectService


@pytest.fixture
def service(db_session, policy):
    return ProjectService(db_session, policy)


def create(service, payload, actor):
    return service.create(ProjectCreate.model_validate(payload), actor)


class TestCreate:

    def test_creator_is_forced_into_investigators(self, service, project_payload, investigator, other_investigator):
        project = create(service, project_payload(investigadores=[other_investigator.id]), investigator)

        assert set(project.investigator_ids) == {investigator.id, other_investigator.id}
        assert project.estado == ProjectStatus.planeado
        assert project.is_evaluated is False

    def test_duplicate_active_name_conflicts(self, service, project_payload, investigator):
        create(service, project_payload(nombre='Genómica del maíz'), investigator)

        with pytest.raises(ConflictError) as exc:
            create(service, project_payload(nombre='Genómica del maíz'), investigator)

        assert exc.value.message == 'Ya existe un proyecto con ese nombre'

    def test_name_of_deleted_project_can_be_reused(self, service, project_payload, investigator):
        first = create(service, project_payload(nombre='Suelos andinos'), investigator)
        service.soft_delete(first.id, investigator)

        second = create(service, project_payload(nombre='Suelos andinos'), investigator)

        assert second.id != first.id

    def test_empty_milestones_rejected(self, service, project_payload, investigator):
        with pytest.raises(BadRequestError) as exc:
            create(service, project_payload(hitos=[]), investigator)
        assert exc.value.message == 'Al menos un hito es obligatorio con nombre y fecha'

    def test_missing_milestones_rejected(self, service, project_payload, investigator):
        payload = project_payload()
        del payload['hitos']
        with pytest.raises(BadRequestError):
            create(service, payload, investigator)

    def test_milestone_without_date_rejected(self, service, project_payload, investigator):
        with pytest.raises(BadRequestError) as exc:
            create(service, project_payload(hitos=[{'nombre': 'M1'}]), investigator)
        assert exc.value.message == 'El hito en la posición 1 debe tener un nombre y una fecha'

    def test_milestone_position_is_reported(self, service, project_payload, investigator):
        hitos = [
            {'nombre': 'M1', 'fecha': '2025-02-01T00:00:00'},
            {'nombre': '  ', 'fecha': '2025-03-01T00:00:00'},
        ]
        with pytest.raises(BadRequestError) as exc:
            create(service, project_payload(hitos=hitos), investigator)
        assert 'posición 2' in exc.value.message

    def test_schedule_requires_both_dates(self, service, project_payload, investigator):
        with pytest.raises(BadRequestError) as exc:
            create(service, project_payload(cronograma={'fechaInicio': '2025-01-01T00:00:00'}), investigator)
        assert exc.value.message == 'El cronograma debe incluir fechaInicio y fechaFin'

    def test_start_after_end_rejected(self, service, project_payload, investigator):
        cronograma = {'fechaInicio': '2026-01-01T00:00:00', 'fechaFin': '2025-01-01T00:00:00'}
        with pytest.raises(BadRequestError):
            create(service, project_payload(cronograma=cronograma), investigator)

    def test_single_deliverable_becomes_list(self, service, project_payload, investigator):
        hitos = [{'nombre': 'M1', 'fecha': '2025-02-01T00:00:00', 'entregable': 'Prototipo'}]

        project = create(service, project_payload(hitos=hitos), investigator)

        assert project.hitos[0].entregables == ['Prototipo']

    def test_unknown_investigator_rejected(self, service, project_payload, investigator):
        with pytest.raises(BadRequestError) as exc:
            create(service, project_payload(investigadores=[99999]), investigator)
        assert exc.value.errors == ['Usuario no encontrado: 99999']


class TestUpdate:

    def test_member_updates_and_unknown_fields_are_ignored(self, service, make_project, investigator):
        project = make_project(investigator)

        updated = service.update(project.id, investigator, {
            'descripcion': 'Nueva descripción',
            'isEvaluated': True,
            'campoInventado': 'x',
        })

        assert updated.descripcion == 'Nueva descripción'
        assert updated.is_evaluated is False

    def test_non_member_forbidden(self, service, make_project, investigator, other_investigator):
        project = make_project(investigator)

        with pytest.raises(ForbiddenError) as exc:
            service.update(project.id, other_investigator, {'descripcion': 'x'})
        assert exc.value.message == 'No tienes permisos para actualizar este proyecto'

    def test_admin_can_update_any_project(self, service, make_project, investigator, admin_user):
        project = make_project(investigator)
        updated = service.update(project.id, admin_user, {'estado': 'En Proceso'})
        assert updated.estado == ProjectStatus.en_proceso

    def test_rename_to_existing_name_conflicts(self, service, make_project, investigator):
        make_project(investigator, nombre='Proyecto A')
        project_b = make_project(investigator, nombre='Proyecto B')

        with pytest.raises(ConflictError):
            service.update(project_b.id, investigator, {'nombre': 'Proyecto A'})

    def test_rename_with_padding_still_conflicts(self, service, make_project, investigator):
        make_project(investigator, nombre='Proyecto A')
        project_b = make_project(investigator, nombre='Proyecto B')

        with pytest.raises(ConflictError):
            service.update(project_b.id, investigator, {'nombre': '  Proyecto A '})
        assert service.get(project_b.id).nombre == 'Proyecto B'

    def test_blank_name_rejected(self, service, make_project, investigator):
        project = make_project(investigator)
        with pytest.raises(BadRequestError):
            service.update(project.id, investigator, {'nombre': '   '})

    def test_null_keeps_value_and_empty_string_clears(self, service, make_project, investigator):
        project = make_project(investigator, objetivos='Objetivo inicial')

        kept = service.update(project.id, investigator, {'objetivos': None, 'presupuesto': 20})
        assert kept.objetivos == 'Objetivo inicial'
        assert kept.presupuesto == 20

        cleared = service.update(project.id, investigator, {'objetivos': ''})
        assert cleared.objetivos == ''

    def test_keeping_same_name_is_not_a_conflict(self, service, make_project, investigator):
        project = make_project(investigator, nombre='Proyecto A')
        updated = service.update(project.id, investigator, {'nombre': 'Proyecto A', 'presupuesto': 10})
        assert updated.presupuesto == 10

    def test_milestones_are_replaced(self, service, make_project, investigator):
        project = make_project(investigator)

        updated = service.update(project.id, investigator, {'hitos': [
            {'nombre': 'Campo', 'fecha': '2025-04-01T00:00:00'},
            {'nombre': 'Cierre', 'fecha': '2025-11-01T00:00:00', 'entregables': ['Informe final']},
        ]})

        assert [hito.nombre for hito in updated.hitos] == ['Campo', 'Cierre']

    def test_empty_investigators_rejected(self, service, make_project, investigator):
        project = make_project(investigator)
        with pytest.raises(BadRequestError):
            service.update(project.id, investigator, {'investigadores': []})

    def test_deleted_project_not_found(self, service, make_project, investigator):
        project = make_project(investigator)
        service.soft_delete(project.id, investigator)

        with pytest.raises(NotFoundError) as exc:
            service.update(project.id, investigator, {'descripcion': 'x'})
        assert exc.value.message == 'Proyecto no encontrado o eliminado'


class TestDeleteAndRestore:

    def test_member_cannot_delete_finished_project_but_admin_can(self, service, make_project,
                                                                   investigator, admin_user):
        project = make_project(investigator, estado='Finalizado')

        with pytest.raises(ForbiddenError) as exc:
            service.soft_delete(project.id, investigator)
        assert exc.value.message == (
            'Solo los administradores pueden eliminar proyectos en estado finalizado o cancelado.'
        )

        deleted = service.soft_delete(project.id, admin_user)
        assert deleted.is_deleted is True

    def test_non_member_cannot_delete(self, service, make_project, investigator, other_investigator):
        project = make_project(investigator)
        with pytest.raises(ForbiddenError):
            service.soft_delete(project.id, other_investigator)

    def test_deleted_project_hidden_from_reads(self, service, make_project, investigator):
        project = make_project(investigator)
        service.soft_delete(project.id, investigator)

        with pytest.raises(NotFoundError):
            service.get(project.id)
        assert service.list()['total'] == 0
        assert service.list_for_user(investigator)['total'] == 0

    def test_restore_is_admin_only(self, service, make_project, investigator):
        project = make_project(investigator)
        service.soft_delete(project.id, investigator)

        with pytest.raises(ForbiddenError):
            service.restore(project.id, investigator)

    def test_restore_of_active_project_not_found(self, service, make_project, investigator, admin_user):
        project = make_project(investigator)
        with pytest.raises(NotFoundError) as exc:
            service.restore(project.id, admin_user)
        assert exc.value.message == 'Proyecto no encontrado o no está eliminado.'

    def test_restore_round_trip_keeps_every_field(self, service, make_project, investigator,
                                                  other_investigator, admin_user):
        project = make_project(investigator, investigadores=[other_investigator.id])
        ignored = {'is_deleted', 'updated_at'}
        before = ProjectOut.model_validate(project).model_dump(exclude=ignored)

        service.soft_delete(project.id, investigator)
        restored = service.restore(project.id, admin_user)

        assert restored.is_deleted is False
        assert ProjectOut.model_validate(restored).model_dump(exclude=ignored) == before

    def test_restore_blocked_when_name_taken(self, service, make_project, investigator, admin_user):
        original = make_project(investigator, nombre='Agua limpia')
        service.soft_delete(original.id, investigator)
        make_project(investigator, nombre='Agua limpia')

        with pytest.raises(ConflictError):
            service.restore(original.id, admin_user)


class TestReads:

    def test_list_is_paginated_newest_first(self, service, make_project, investigator):
        projects = [make_project(investigator) for _ in range(3)]

        result = service.list(page=1, limit=2)

        assert result['total'] == 3
        assert result['limit'] == 2
        assert [p.id for p in result['data']] == [projects[2].id, projects[1].id]

    def test_list_for_user_only_returns_own_projects(self, service, make_project, investigator, other_investigator):
        mine = make_project(investigator)
        make_project(other_investigator)

        result = service.list_for_user(investigator)

        assert [p.id for p in result['data']] == [mine.id]

    def test_search_matches_description_case_insensitively(self, service, make_project, investigator):
        project = make_project(investigator, descripcion='Estudio de BIODIVERSIDAD marina')

        result = service.search('biodiversidad')

        assert [p.id for p in result['data']] == [project.id]

    def test_search_without_results_not_found(self, service, make_project, investigator):
        make_project(investigator)
        with pytest.raises(NotFoundError) as exc:
            service.search('zzz-inexistente')
        assert exc.value.message == 'No se encontraron proyectos'

    def test_search_treats_wildcards_literally(self, service, make_project, investigator):
        make_project(investigator, nombre='Avance 100')
        with pytest.raises(NotFoundError):
            service.search('100%')
