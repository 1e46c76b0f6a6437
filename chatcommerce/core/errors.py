from __future__ import annotations


class ChatCommerceError(Exception):
    """Base de todos os erros de domínio da conversa."""


class NotFound(ChatCommerceError):
    """Vendor ou item não encontrado no catálogo."""


class IndexInvalid(ChatCommerceError):
    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"cart index {index} out of range (size={size})")
        self.index = index
        self.size = size


class ConcurrencyConflict(ChatCommerceError):
    def __init__(self, customer_id: str, expected_version: int) -> None:
        super().__init__(f"session {customer_id} changed since version {expected_version}")
        self.customer_id = customer_id
        self.expected_version = expected_version


class UpstreamUnavailable(ChatCommerceError):
    def __init__(self, service: str, detail: str = "") -> None:
        message = f"{service} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.service = service
        self.detail = detail


class InvariantViolation(ChatCommerceError):
    """Estado da sessão incoerente; a conversa volta ao passo válido mais próximo."""


class StorageError(ChatCommerceError):
    """Falha não recuperável ao persistir a sessão."""
