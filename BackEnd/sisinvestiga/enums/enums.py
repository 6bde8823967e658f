from enum import Enum


class RoleName(str, Enum):
    administrador = "Administrador"
    investigador = "Investigador"


class ProjectStatus(str, Enum):
    planeado = "Planeado"
    en_proceso = "En Proceso"
    finalizado = "Finalizado"
    cancelado = "Cancelado"


# Estados en los que solo un administrador puede eliminar el proyecto
CLOSED_PROJECT_STATUSES = frozenset({ProjectStatus.finalizado, ProjectStatus.cancelado})


class PublicationType(str, Enum):
    articulo = "Articulo"
    informe = "Informe"
    tesis = "Tesis"
    presentacion = "Presentacion"
    otro = "Otro"


class PublicationStatus(str, Enum):
    borrador = "Borrador"
    revisado = "Revisado"
    publicado = "Publicado"


# Estados a partir de los cuales autores y proyecto quedan bloqueados
LOCKED_PUBLICATION_STATUSES = frozenset({PublicationStatus.revisado, PublicationStatus.publicado})


class RequestType(str, Enum):
    unirse_a_proyecto = "Unirse a Proyecto"
    recursos = "Recursos"
    aprobacion = "Aprobación"
    permiso = "Permiso"
    otros = "Otros"


# Tipos de solicitud que exigen un proyecto asociado
REQUEST_TYPES_REQUIRING_PROJECT = frozenset({
    RequestType.unirse_a_proyecto,
    RequestType.recursos,
    RequestType.aprobacion,
})


class RequestStatus(str, Enum):
    pendiente = "Pendiente"
    aprobada = "Aprobada"
    rechazada = "Rechazada"
    en_proceso = "En Proceso"
