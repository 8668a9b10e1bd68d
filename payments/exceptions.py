"""
Erros da integração com o Asaas.

Dois ramos: `PaymentsError` para falhas locais (estado, validação,
autenticação de webhook) e `GatewayError` para falhas na conversa com o
gateway. A camada HTTP (`payments.http`) traduz cada tipo em um status.
"""

from __future__ import annotations

from typing import Any


class PaymentsError(Exception):
    """Base para erros locais do subsistema de pagamentos."""

    status_code = 500
    default_message = "Erro ao processar a solicitação."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(PaymentsError):
    status_code = 404
    default_message = "Registro não encontrado."


class ConflictError(PaymentsError):
    status_code = 409
    default_message = "Conflito com o estado atual do registro."


class PreconditionError(PaymentsError):
    """Configuração ausente ou subconta ainda não provisionada."""

    status_code = 412
    default_message = "Pré-condição não atendida."


class ValidationFailed(PaymentsError):
    status_code = 400
    default_message = "Dados inválidos."

    def __init__(self, message: str | None = None, errors: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class WebhookAuthError(PaymentsError):
    status_code = 401
    default_message = "Token do webhook inválido."


class InvalidWebhookPayload(PaymentsError):
    status_code = 400
    default_message = "Payload do webhook inválido."


class UnsupportedEventError(PaymentsError):
    status_code = 400
    default_message = "Evento não suportado."


class PartialFailureError(PaymentsError):
    """
    O gateway aceitou a operação, mas o estado local não acompanhou.

    Sempre acompanha um `ReconciliationIssue` gravado para intervenção manual.
    """

    status_code = 500
    default_message = "Operação concluída no Asaas, mas não registrada localmente."


class GatewayError(RuntimeError):
    """Falha ao falar com o Asaas."""

    status_code = 502

    def __init__(self, message: str, operation: str = "") -> None:
        self.message = message
        self.operation = operation
        super().__init__(message)


class GatewayTransportError(GatewayError):
    """Rede, DNS ou timeout: o Asaas não chegou a responder."""

    status_code = 504


class GatewayRejectedError(GatewayError):
    """Resposta não-2xx (ou corpo ilegível) do Asaas."""

    def __init__(self, operation: str, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(
            f"Erro Asaas ({operation}): HTTP {status} - {body}",
            operation=operation,
        )


class OnboardingLinkUnavailable(GatewayError):
    status_code = 404

    def __init__(self, message: str = "Nenhum link de onboarding disponível.") -> None:
        super().__init__(message, operation="myAccount/documents")


class ProfileIncompleteError(GatewayError):
    """Perfil comercial sem os campos que o Asaas exige para abrir subconta."""

    status_code = 400

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Perfil incompleto para criar subconta: " + ", ".join(missing),
            operation="accounts",
        )
