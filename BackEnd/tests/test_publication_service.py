"""
Publication tests: author derivation, locked fields, publish gate, unknown keys
"""
import pytest

from sisinvestiga.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from sisinvestiga.enums.enums import PublicationStatus, PublicationType
from sisinvestiga.models.models import Publication
from sisinvestiga.schemas.publication_schemas import PublicationCreate
from sisinvestiga.services.project_service import ProjectService
from sisinvestiga.services.publication_service import PublicationService


@pytest.fixture
def service(db_session, policy):
    return PublicationService(db_session, policy)


@pytest.fixture
def team_project(make_project, investigator, other_investigator):
    return make_project(investigator, investigadores=[other_investigator.id])


@pytest.fixture
def publication_data():
    def _data(project_id, **overrides) -> PublicationCreate:
        data = {
            'titulo': 'Efectos del clima en cultivos',
            'fecha': '2025-05-10T00:00:00',
            'proyecto': project_id,
            'revista': 'Revista de Agronomía',
            'resumen': 'Resumen del artículo',
            'palabrasClave': 'clima, cultivos',
            'tipoPublicacion': 'Articulo',
            'idioma': 'es',
        }
        data.update(overrides)
        return PublicationCreate.model_validate(data)
    return _data


@pytest.fixture
def published(service, team_project, publication_data, investigator, admin_user):
    publication = service.create(publication_data(team_project.id), investigator)
    return service.update(publication.id, admin_user, {'estado': 'Publicado'})


class TestCreate:

    def test_authors_are_the_project_team(self, service, team_project, publication_data,
                                          investigator, other_investigator):
        publication = service.create(publication_data(team_project.id), investigator)

        assert publication.author_ids == sorted([investigator.id, other_investigator.id])
        assert publication.estado == PublicationStatus.borrador
        assert publication.palabras_clave == ['clima', 'cultivos']

    def test_outsider_cannot_publish_for_project(self, service, team_project, publication_data, make_user):
        outsider = make_user()
        with pytest.raises(ForbiddenError):
            service.create(publication_data(team_project.id), outsider)

    def test_admin_outside_team_can_create(self, service, team_project, publication_data, admin_user):
        publication = service.create(publication_data(team_project.id), admin_user)
        assert admin_user.id not in publication.author_ids

    def test_investigator_cannot_create_already_published(self, service, team_project,
                                                          publication_data, investigator):
        with pytest.raises(ForbiddenError):
            service.create(publication_data(team_project.id, estado='Publicado'), investigator)

    def test_missing_project_not_found(self, service, publication_data, investigator):
        with pytest.raises(NotFoundError):
            service.create(publication_data(99999), investigator)


class TestUpdate:

    def test_unknown_key_rejects_whole_update(self, service, team_project, publication_data, investigator):
        publication = service.create(publication_data(team_project.id), investigator)

        with pytest.raises(BadRequestError) as exc:
            service.update(publication.id, investigator, {'titulo': 'Nuevo', 'isDeleted': True})

        assert exc.value.message == 'Intento de actualización no válido.'
        assert service.get(publication.id).titulo == 'Efectos del clima en cultivos'

    def test_non_author_forbidden(self, service, team_project, publication_data, investigator, make_user):
        publication = service.create(publication_data(team_project.id), investigator)
        with pytest.raises(ForbiddenError):
            service.update(publication.id, make_user(), {'titulo': 'Nuevo'})

    def test_published_authors_locked_for_investigator(self, service, published, investigator):
        with pytest.raises(BadRequestError) as exc:
            service.update(published.id, investigator, {'autores': [investigator.id]})
        assert exc.value.message == (
            'No puedes cambiar autores o el proyecto de una publicación revisada o publicada.'
        )

    def test_published_authors_editable_by_admin(self, service, published, investigator, admin_user):
        updated = service.update(published.id, admin_user, {'autores': [investigator.id]})
        assert updated.author_ids == [investigator.id]

    def test_authors_must_belong_to_project(self, service, team_project, publication_data,
                                            investigator, make_user):
        publication = service.create(publication_data(team_project.id), investigator)
        outsider = make_user()

        with pytest.raises(BadRequestError) as exc:
            service.update(publication.id, investigator, {'autores': [investigator.id, outsider.id]})

        assert exc.value.message == 'Algunos autores no pertenecen al proyecto especificado.'
        assert exc.value.errors == [str(outsider.id)]

    def test_moving_to_foreign_project_forbidden(self, service, team_project, publication_data,
                                                 investigator, make_project, make_user):
        publication = service.create(publication_data(team_project.id), investigator)
        foreign = make_project(make_user())

        with pytest.raises(ForbiddenError):
            service.update(publication.id, investigator, {'proyecto': foreign.id})

    def test_moving_project_with_matching_authors(self, service, team_project, publication_data,
                                                  investigator, make_project):
        publication = service.create(publication_data(team_project.id), investigator)
        solo = make_project(investigator)

        updated = service.update(publication.id, investigator, {'proyecto': solo.id, 'autores': [investigator.id]})

        assert updated.project_id == solo.id
        assert updated.author_ids == [investigator.id]

    def test_moving_project_keeps_authors_only_if_they_belong(self, service, team_project, publication_data,
                                                              investigator, other_investigator, make_project):
        publication = service.create(publication_data(team_project.id), investigator)
        solo = make_project(investigator)

        with pytest.raises(BadRequestError) as exc:
            service.update(publication.id, investigator, {'proyecto': solo.id})

        assert exc.value.message == 'Algunos autores no pertenecen al proyecto especificado.'
        assert exc.value.errors == [str(other_investigator.id)]
        unchanged = service.get(publication.id)
        assert unchanged.project_id == team_project.id
        assert set(unchanged.author_ids) <= set(team_project.investigator_ids)

    def test_moving_to_project_with_same_team(self, service, team_project, publication_data,
                                              investigator, other_investigator, make_project):
        publication = service.create(publication_data(team_project.id), investigator)
        twin = make_project(investigator, investigadores=[other_investigator.id])

        updated = service.update(publication.id, investigator, {'proyecto': twin.id})

        assert updated.project_id == twin.id
        assert set(updated.author_ids) <= set(twin.investigator_ids)

    def test_publishing_requires_admin(self, service, team_project, publication_data, investigator):
        publication = service.create(publication_data(team_project.id), investigator)

        with pytest.raises(ForbiddenError):
            service.update(publication.id, investigator, {'estado': 'Publicado'})

        reviewed = service.update(publication.id, investigator, {'estado': 'Revisado'})
        assert reviewed.estado == PublicationStatus.revisado


class TestDeleteAndRestore:

    def test_author_cannot_delete_published(self, service, published, investigator):
        with pytest.raises(BadRequestError) as exc:
            service.delete(published.id, investigator)
        assert exc.value.message == 'No puedes eliminar una publicación que ya ha sido publicada.'

    def test_admin_deletes_published_and_restores(self, service, published, admin_user, investigator):
        service.delete(published.id, admin_user)
        with pytest.raises(NotFoundError):
            service.get(published.id)

        with pytest.raises(ForbiddenError):
            service.restore(published.id, investigator)

        restored = service.restore(published.id, admin_user)
        assert restored.is_deleted is False
        assert restored.estado == PublicationStatus.publicado


    def test_restore_blocked_while_project_deleted(self, service, team_project, publication_data,
                                                   investigator, admin_user, db_session, policy):
        publication = service.create(publication_data(team_project.id), investigator)
        service.delete(publication.id, investigator)
        ProjectService(db_session, policy).soft_delete(team_project.id, admin_user)

        with pytest.raises(BadRequestError):
            service.restore(publication.id, admin_user)
        assert db_session.get(Publication, publication.id).is_deleted is True

        ProjectService(db_session, policy).restore(team_project.id, admin_user)
        restored = service.restore(publication.id, admin_user)
        assert service.get(restored.id).id == publication.id


class TestReads:

    def test_list_for_user_includes_catalogs(self, service, team_project, publication_data,
                                             other_investigator, investigator):
        service.create(publication_data(team_project.id), investigator)

        result = service.list_for_user(other_investigator)

        assert result['total'] == 1
        assert 'Articulo' in result['tipos_publicacion']
        assert result['estados_publicacion'] == ['Borrador', 'Revisado', 'Publicado']

    def test_search_matches_keywords(self, service, team_project, publication_data, investigator):
        publication = service.create(publication_data(team_project.id, palabrasClave=['hidrología']), investigator)
        service.create(publication_data(team_project.id, titulo='Otro tema', resumen='Nada'), investigator)

        result = service.search('hidrolog')

        assert [p.id for p in result['data']] == [publication.id]

    def test_list_filters_by_type(self, service, team_project, publication_data, investigator):
        service.create(publication_data(team_project.id), investigator)
        service.create(publication_data(team_project.id, tipoPublicacion='Tesis'), investigator)

        result = service.list(tipo=PublicationType.tesis)

        assert result['total'] == 1
        assert result['data'][0].tipo_publicacion.value == 'Tesis'
