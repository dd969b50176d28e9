"""Display messages shown to account holders."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

MESSAGES: Mapping[str, Mapping[str, str]] = {
    "en": {
        "subscription_created": "Subscription created successfully",
        "subscription_create_failed": "We could not create your subscription",
        "subscription_exists": "You already have a subscription",
        "payment_confirmation_required": "Your subscription requires payment confirmation",
        "payment_method_required": "Your payment could not be completed, please use another payment method",
        "plan_changed": "Plan changed successfully",
        "plan_change_failed": "We could not change your plan",
        "no_active_subscription": "No active subscription found",
        "subscription_canceled_now": "Subscription canceled immediately",
        "subscription_cancel_scheduled": "Subscription scheduled for cancellation at the end of the billing period",
        "subscription_cancel_failed": "We could not cancel your subscription",
        "no_canceled_subscription": "No canceled subscription found",
        "subscription_resumed": "Subscription resumed successfully",
        "subscription_resume_failed": "We could not resume your subscription",
        "no_subscription": "No subscription found for this account",
        "subscription_details_failed": "We could not load your subscription",
        "invoices_failed": "We could not load your invoices",
        "setup_intent_failed": "We could not start adding a payment method",
        "payment_methods_failed": "We could not load your payment methods",
        "default_payment_method_updated": "Default payment method updated",
        "default_payment_method_failed": "We could not update your default payment method",
        "payment_method_deleted": "Payment method deleted successfully",
        "payment_method_delete_failed": "We could not delete the payment method",
        "payment_method_not_found": "Payment method not found",
        "price_not_found": "The selected plan is not available",
        "invalid_price": "A plan must be selected",
        "invalid_payment_method": "A payment method is required",
        "invalid_trial_days": "The trial period cannot exceed {max_days} days",
        "invalid_invoice_limit": "The invoice limit must be between 1 and 100",
    },
    "es": {
        "subscription_created": "Suscripción creada exitosamente",
        "subscription_create_failed": "Error al crear la suscripción",
        "subscription_exists": "Ya tienes una suscripción",
        "payment_confirmation_required": "La suscripción requiere confirmación de pago",
        "payment_method_required": "No se pudo completar el pago, usa otro método de pago",
        "plan_changed": "Plan cambiado exitosamente",
        "plan_change_failed": "Error al cambiar el plan",
        "no_active_subscription": "No se encontró una suscripción activa",
        "subscription_canceled_now": "Suscripción cancelada inmediatamente",
        "subscription_cancel_scheduled": "Suscripción programada para cancelación al final del período",
        "subscription_cancel_failed": "Error al cancelar la suscripción",
        "no_canceled_subscription": "No se encontró una suscripción cancelada",
        "subscription_resumed": "Suscripción reanudada exitosamente",
        "subscription_resume_failed": "Error al reanudar la suscripción",
        "no_subscription": "Usuario sin suscripción",
        "subscription_details_failed": "Error al obtener la suscripción",
        "invoices_failed": "Error al obtener las facturas",
        "setup_intent_failed": "Error al preparar el método de pago",
        "payment_methods_failed": "Error al obtener los métodos de pago",
        "default_payment_method_updated": "Método de pago predeterminado actualizado",
        "default_payment_method_failed": "Error al actualizar el método de pago predeterminado",
        "payment_method_deleted": "Método de pago eliminado exitosamente",
        "payment_method_delete_failed": "Error al eliminar el método de pago",
        "payment_method_not_found": "Método de pago no encontrado",
        "price_not_found": "El plan seleccionado no está disponible",
        "invalid_price": "El plan es requerido",
        "invalid_payment_method": "El método de pago es requerido",
        "invalid_trial_days": "El período de prueba no puede exceder {max_days} días",
        "invalid_invoice_limit": "El límite de facturas debe estar entre 1 y 100",
    },
}


@dataclass(frozen=True)
class MessageCatalog:
    """Looks up display text for a locale, falling back to English."""

    locale: str = "en"

    def get(self, key: str, **params: object) -> str:
        catalog: Mapping[str, str] = MESSAGES.get(self.locale, MESSAGES["en"])
        template = catalog.get(key) or MESSAGES["en"].get(key)
        if template is None:
            raise KeyError(f"Unknown billing message key: {key}")
        return template.format(**params) if params else template


__all__ = ["MESSAGES", "MessageCatalog"]
