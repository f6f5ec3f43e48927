# storefront/services/exceptions.py

class ServiceError(Exception):
    """Clase base para errores de la capa de servicio."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class TransportError(ServiceError):
    """Fallo de transporte: sin conectividad, timeout o error 5xx del backend."""
    pass


class MalformedResponseError(TransportError):
    """La respuesta no respeta el envelope o el esquema esperado."""
    pass


class AuthenticationRejectedError(ServiceError):
    """El backend rechazó la credencial (HTTP 401)."""
    pass


class StorageError(ServiceError):
    """Fallo de lectura/escritura en el almacenamiento persistente."""
    pass


class CredentialStorageError(StorageError):
    """No se pudo persistir o eliminar la credencial."""
    pass
