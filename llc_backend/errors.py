"""
Taxonomie d'erreurs du backend de paiement.

Chaque erreur porte son code HTTP et un message `detail`; le handler enregistré
par app_setup.exceptions les rend en JSON {"detail": ...}, comme HTTPException.
"""
from typing import Optional


class CheckoutError(Exception):
    status_code = 500
    default_detail = "Erreur de paiement"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(CheckoutError):
    """Requête invalide: jamais rejouée côté appelant."""
    status_code = 400
    default_detail = "Requête invalide"


class UnsupportedRegion(ValidationError):
    default_detail = "Unsupported state"

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Unsupported state: {state or '?'}")


class MisconfiguredAddOn(ValidationError):
    default_detail = "Add-on non configuré"

    def __init__(self, add_on: str):
        self.add_on = add_on
        super().__init__(f"Add-on non configuré: {add_on} (Price ID manquant)")


class InvalidDeferredMarker(ValidationError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Marqueur d'abonnement différé inconnu: {value!r}")


class SignatureError(CheckoutError):
    status_code = 400
    default_detail = "Webhook invalide"


class PaymentIncomplete(CheckoutError):
    """Issue normale de la vérification: le paiement n'est pas (encore) terminé."""
    status_code = 402
    default_detail = "Payment not completed yet"


class SessionNotFound(CheckoutError):
    status_code = 404
    default_detail = "Session introuvable"


class ProcessorError(CheckoutError):
    """
    Échec d'un appel sortant vers Stripe.
    - retryable=True pour un timeout / une coupure réseau (HTTP 503)
    - sinon erreur renvoyée par Stripe (HTTP 502)
    """
    status_code = 502
    default_detail = "Erreur Stripe"

    def __init__(self, detail: Optional[str] = None, retryable: bool = False):
        super().__init__(detail)
        self.retryable = retryable
        if retryable:
            self.status_code = 503


class ConfigurationError(CheckoutError):
    status_code = 500
    default_detail = "Configuration manquante"
