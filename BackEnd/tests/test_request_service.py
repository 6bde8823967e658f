"""
Request tests: project requirement, admin-only resolution, comment thread, scoping
"""
import pytest

from sisinvestiga.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from sisinvestiga.enums.enums import RequestStatus, RequestType
from sisinvestiga.schemas.request_schemas import RequestCreate
from sisinvestiga.services.request_service import RequestService


@pytest.fixture
def service(db_session, policy):
    return RequestService(db_session, policy)


@pytest.fixture
def open_request(service, investigator):
    data = RequestCreate.model_validate({'tipoSolicitud': 'Permiso', 'descripcion': 'Permiso de ausencia'})
    return service.create(data, investigator)


class TestCreate:

    def test_join_request_requires_project(self, service, investigator):
        data = RequestCreate.model_validate({'tipoSolicitud': 'Unirse a Proyecto', 'descripcion': 'Quiero participar'})

        with pytest.raises(BadRequestError) as exc:
            service.create(data, investigator)
        assert exc.value.message == 'El proyecto es obligatorio para este tipo de solicitud'

    def test_unknown_project_not_found(self, service, investigator):
        data = RequestCreate.model_validate({'tipoSolicitud': 'Recursos', 'descripcion': 'Equipo', 'proyecto': 4242})
        with pytest.raises(NotFoundError):
            service.create(data, investigator)

    def test_request_with_project(self, service, investigator, make_project, make_user):
        project = make_project(make_user())
        data = RequestCreate.model_validate({
            'tipoSolicitud': 'Unirse a Proyecto', 'descripcion': 'Quiero participar', 'proyecto': project.id
        })

        request = service.create(data, investigator)

        assert request.estado == RequestStatus.pendiente
        assert request.solicitante_id == investigator.id
        assert request.project_id == project.id
        assert request.revisado_por_id is None

    def test_other_type_without_project(self, open_request):
        assert open_request.tipo_solicitud == RequestType.permiso
        assert open_request.project_id is None


class TestUpdate:

    def test_investigator_cannot_change_status(self, service, open_request, investigator):
        with pytest.raises(ForbiddenError):
            service.update(open_request.id, investigator, {'estado': 'Aprobada'})

    def test_admin_resolution_is_stamped(self, service, open_request, admin_user):
        resolved = service.update(open_request.id, admin_user, {'estado': 'Aprobada'})

        assert resolved.estado == RequestStatus.aprobada
        assert resolved.revisado_por_id == admin_user.id
        assert resolved.fecha_resolucion is not None

    def test_comments_are_appended(self, service, open_request, investigator, admin_user):
        service.update(open_request.id, investigator, {'comentario': 'Primer comentario'})
        updated = service.update(open_request.id, admin_user, {'comentarios': 'Respuesta'})

        assert [c.comentario for c in updated.comentarios] == ['Primer comentario', 'Respuesta']
        assert [c.usuario_id for c in updated.comentarios] == [investigator.id, admin_user.id]
        assert updated.estado == RequestStatus.pendiente

    def test_stranger_cannot_comment(self, service, open_request, other_investigator):
        with pytest.raises(ForbiddenError):
            service.update(open_request.id, other_investigator, {'comentario': 'Hola'})

    def test_unknown_key_rejected(self, service, open_request, investigator):
        with pytest.raises(BadRequestError) as exc:
            service.update(open_request.id, investigator, {'descripcion': 'Otra'})
        assert exc.value.message == 'Intento de actualización no válido.'

    def test_empty_update_rejected(self, service, open_request, admin_user):
        with pytest.raises(BadRequestError):
            service.update(open_request.id, admin_user, {})


class TestReads:

    def test_list_is_scoped_for_investigators(self, service, open_request, other_investigator, admin_user):
        data = RequestCreate.model_validate({'tipoSolicitud': 'Otros', 'descripcion': 'Consulta'})
        service.create(data, other_investigator)

        own = service.list(other_investigator)
        everything = service.list(admin_user)

        assert own['total'] == 1
        assert own['data'][0].solicitante_id == other_investigator.id
        assert everything['total'] == 2

    def test_list_filters_by_status(self, service, open_request, admin_user):
        assert service.list(admin_user, estado=RequestStatus.aprobada)['total'] == 0
        assert service.list(admin_user, estado=RequestStatus.pendiente)['total'] == 1

    def test_get_foreign_request_forbidden(self, service, open_request, other_investigator, admin_user):
        with pytest.raises(ForbiddenError):
            service.get(open_request.id, other_investigator)
        assert service.get(open_request.id, admin_user).id == open_request.id


class TestDeleteAndRestore:

    def test_owner_deletes_and_admin_restores(self, service, open_request, investigator, admin_user):
        service.delete(open_request.id, investigator)

        with pytest.raises(NotFoundError):
            service.get(open_request.id, investigator)
        assert service.get_including_deleted(open_request.id, admin_user).is_deleted is True

        with pytest.raises(ForbiddenError):
            service.restore(open_request.id, investigator)

        restored = service.restore(open_request.id, admin_user)
        assert restored.is_deleted is False

    def test_restore_active_request_not_found(self, service, open_request, admin_user):
        with pytest.raises(NotFoundError) as exc:
            service.restore(open_request.id, admin_user)
        assert exc.value.message == 'Solicitud no encontrada o no está eliminada.'

    def test_admin_view_requires_admin(self, service, open_request, investigator):
        with pytest.raises(ForbiddenError):
            service.get_including_deleted(open_request.id, investigator)
