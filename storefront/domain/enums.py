# storefront/domain/enums.py
import enum


class IdentityKind(str, enum.Enum):
    guest = "guest"
    user = "user"


class AuthPhase(str, enum.Enum):
    anonymous = "anonymous"
    authenticated = "authenticated"


class CartPhase(str, enum.Enum):
    idle = "idle"
    loading = "loading"
    error = "error"


class ErrorKind(str, enum.Enum):
    insufficient_stock = "insufficient_stock"
    variant_inactive = "variant_inactive"
    not_found = "not_found"
    invalid_quantity = "invalid_quantity"
    conversion_not_applicable = "conversion_not_applicable"
    conflict = "conflict"
    invalid_request = "invalid_request"
    # El backend no envió `success`: se trata como fallo
    ambiguous_response = "ambiguous_response"
    rejected = "rejected"
    # Sin respuesta utilizable: conectividad, timeout, 5xx o payload malformado
    transport_error = "transport_error"
    auth_rejected = "auth_rejected"
